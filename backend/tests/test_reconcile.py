"""Tests for the reconciliation pass."""

import asyncio

import pytest

from devchat.core.errors import NotFound
from devchat.models.chat import ChatMessage, ChatSession, CodeArtifact
from devchat.services.reconcile import reconcile_all, reconcile_loop, reconcile_session
from devchat.services.repository import ChatRepository, meta_key

from helpers import run_turn, text_chunks


def _turn_with_code(orchestrator, generator):
    generator.chunks = text_chunks("```python\nx = 1\n```\nDone.")
    handle, _ = run_turn(lambda: orchestrator.start_turn(None, "code please"))
    return handle.session_id


def test_consistent_chat_reports_nothing(orchestrator, generator):
    chat_id = _turn_with_code(orchestrator, generator)
    report = reconcile_session(orchestrator.repository, chat_id)

    assert report.message_count == 2
    assert report.previous_message_count == 2
    assert report.metadata_repaired is False
    assert report.orphan_artifacts == []
    assert report.dangling_references == []


def test_repairs_stale_metadata(orchestrator, generator, store):
    chat_id = _turn_with_code(orchestrator, generator)
    store.put(meta_key(chat_id), ChatSession(id=chat_id, message_count=7, preview="stale").model_dump(mode="json"))

    report = reconcile_session(orchestrator.repository, chat_id)

    assert report.previous_message_count == 7
    assert report.message_count == 2
    assert report.metadata_repaired is True
    session = orchestrator.repository.get_session(chat_id)
    assert session.message_count == 2
    assert session.preview == "```python\nx = 1\n```\nDone."


def test_reports_orphans_and_dangling_references_without_deleting(orchestrator, generator):
    repository = orchestrator.repository
    chat_id = _turn_with_code(orchestrator, generator)
    repository.save_artifact(
        CodeArtifact(id="assistant(9)_code(1)", parent_id="assistant(9)", session_id=chat_id, code="orphan")
    )
    repository.delete_artifact(chat_id, "assistant(1)_code(1)")

    report = reconcile_session(repository, chat_id)

    assert report.orphan_artifacts == ["assistant(9)_code(1)"]
    assert report.dangling_references == ["assistant(1)_code(1)"]
    assert repository.get_artifact(chat_id, "assistant(9)_code(1)") is not None
    assert report.to_dict()["orphan_artifacts"] == ["assistant(9)_code(1)"]


def test_reconcile_all_covers_chats_missing_metadata(store):
    repository = ChatRepository(store)
    repository.save_message(ChatMessage(id="user(1)", session_id="chat(1700000000000)", role="user", content="hi"))
    store.delete(meta_key("chat(1700000000000)"))

    reports = reconcile_all(repository)

    assert [r.chat_id for r in reports] == ["chat(1700000000000)"]
    assert reports[0].previous_message_count is None
    assert reports[0].metadata_repaired is True
    assert repository.get_session("chat(1700000000000)").message_count == 1


def test_reconcile_loop_runs_until_cancelled(store):
    repository = ChatRepository(store)
    repository.save_message(ChatMessage(id="user(1)", session_id="chat(1700000000000)", role="user", content="hi"))
    store.delete(meta_key("chat(1700000000000)"))

    async def go():
        task = asyncio.create_task(reconcile_loop(repository, 0))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(go())
    assert repository.get_session("chat(1700000000000)") is not None


def test_unknown_chat_is_not_created(store):
    repository = ChatRepository(store)
    with pytest.raises(NotFound):
        reconcile_session(repository, "chat(1234567890123)")
    assert repository.refresh_session("chat(1234567890123)") is None
    assert store.list("") == []
