"""Tests for conversation history endpoints."""

import pytest

from helpers import run_turn, text_chunks


@pytest.fixture
def seeded_chat(sql_orchestrator, generator):
    """A chat with one user/assistant exchange whose reply carries a code block."""
    generator.chunks = text_chunks("Try this:\n```python\nprint(1)\n```\nThat's it.")
    handle, _ = run_turn(lambda: sql_orchestrator.start_turn(None, "show me code"))
    return handle.session_id


def test_list_conversations_empty(client):
    response = client.get("/api/conversations/")
    assert response.status_code == 200
    assert response.json() == []


def test_list_conversations(client, seeded_chat):
    response = client.get("/api/conversations/")
    assert response.status_code == 200
    data = response.json()
    assert len(data) == 1
    assert data[0]["id"] == seeded_chat
    assert data[0]["message_count"] == 2
    assert data[0]["preview"].endswith("That's it.")


def test_get_conversation(client, seeded_chat):
    response = client.get(f"/api/conversations/{seeded_chat}")
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == seeded_chat
    assert [m["role"] for m in data["messages"]] == ["user", "assistant"]
    assert data["messages"][0]["content"] == "show me code"
    assert data["messages"][1]["artifact_ids"] == ["assistant(1)_code(1)"]


def test_get_conversation_not_found(client):
    response = client.get("/api/conversations/chat(1700000000000)")
    assert response.status_code == 404


def test_get_conversation_invalid_id(client):
    response = client.get("/api/conversations/9999")
    assert response.status_code == 400


def test_message_details(client, seeded_chat):
    response = client.get(f"/api/conversations/{seeded_chat}/messages/assistant(1)")
    assert response.status_code == 200
    data = response.json()
    assert data["message"]["id"] == "assistant(1)"
    assert len(data["artifacts"]) == 1
    artifact = data["artifacts"][0]
    assert artifact["id"] == "assistant(1)_code(1)"
    assert artifact["language"] == "python"
    assert artifact["code"] == "print(1)"
    assert artifact["metadata"]["block_index"] == 1


def test_message_details_invalid_message_id(client, seeded_chat):
    response = client.get(f"/api/conversations/{seeded_chat}/messages/bot(1)")
    assert response.status_code == 400


def test_message_details_missing(client, seeded_chat):
    response = client.get(f"/api/conversations/{seeded_chat}/messages/assistant(5)")
    assert response.status_code == 404


def test_delete_conversation(client, seeded_chat, sql_orchestrator):
    response = client.delete(f"/api/conversations/{seeded_chat}")
    assert response.status_code == 200
    assert response.json()["deleted_count"] > 0

    assert client.get(f"/api/conversations/{seeded_chat}").status_code == 404
    assert sql_orchestrator.repository.store.list(f"message:{seeded_chat}:") == []
    assert sql_orchestrator.repository.store.list(f"artifact:{seeded_chat}:") == []


def test_delete_conversation_not_found(client):
    response = client.delete("/api/conversations/chat(1700000000000)")
    assert response.status_code == 404


def test_delete_all_conversations(client, seeded_chat):
    response = client.delete("/api/conversations/")
    assert response.status_code == 200
    assert client.get("/api/conversations/").json() == []


def test_reconcile_conversation(client, seeded_chat):
    response = client.post(f"/api/conversations/{seeded_chat}/reconcile")
    assert response.status_code == 200
    data = response.json()
    assert data["chat_id"] == seeded_chat
    assert data["message_count"] == 2
    assert data["metadata_repaired"] is False


def test_reconcile_unknown_conversation(client):
    response = client.post("/api/conversations/chat(1234567890123)/reconcile")
    assert response.status_code == 404
    assert client.get("/api/conversations/").json() == []
