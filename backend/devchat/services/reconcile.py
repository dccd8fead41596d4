"""Consistency pass over persisted chats.

Session metadata is recomputed from the message records. Artifacts whose
parent is gone, or whose parent no longer lists them, are reported but
never deleted here; purging is an explicit operation.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from devchat.core.errors import NotFound
from devchat.services.repository import ChatRepository

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    chat_id: str
    message_count: int = 0
    previous_message_count: int | None = None
    orphan_artifacts: list[str] = field(default_factory=list)
    dangling_references: list[str] = field(default_factory=list)

    @property
    def metadata_repaired(self) -> bool:
        return self.previous_message_count != self.message_count

    def to_dict(self) -> dict:
        return {
            "chat_id": self.chat_id,
            "message_count": self.message_count,
            "previous_message_count": self.previous_message_count,
            "metadata_repaired": self.metadata_repaired,
            "orphan_artifacts": self.orphan_artifacts,
            "dangling_references": self.dangling_references,
        }


def reconcile_session(repository: ChatRepository, chat_id: str) -> ReconcileReport:
    before = repository.get_session(chat_id)
    messages = {m.id: m for m in repository.list_messages(chat_id)}
    artifacts = repository.list_artifacts(chat_id)
    if before is None and not messages and not artifacts:
        raise NotFound(f"No records for chat {chat_id}")

    report = ReconcileReport(chat_id=chat_id, previous_message_count=before.message_count if before else None)
    for artifact in artifacts:
        parent = messages.get(artifact.parent_id)
        if parent is None or artifact.id not in parent.artifact_ids:
            report.orphan_artifacts.append(artifact.id)

    for message in messages.values():
        for artifact_id in message.artifact_ids:
            if repository.get_artifact(chat_id, artifact_id) is None:
                report.dangling_references.append(artifact_id)

    # Orphan artifacts alone do not make a chat; its metadata stays absent
    session = repository.refresh_session(chat_id)
    report.message_count = session.message_count if session else 0

    if report.orphan_artifacts or report.dangling_references or report.metadata_repaired:
        logger.warning(
            f"Reconciled {chat_id}: count {report.previous_message_count} -> {report.message_count}, "
            f"{len(report.orphan_artifacts)} orphan(s), {len(report.dangling_references)} dangling reference(s)"
        )
    return report


def reconcile_all(repository: ChatRepository) -> list[ReconcileReport]:
    chat_ids = {key.split(":", 2)[1] for key in repository.store.list("message:")}
    chat_ids.update(s.id for s in repository.list_sessions())
    reports = []
    for chat_id in sorted(chat_ids):
        try:
            reports.append(reconcile_session(repository, chat_id))
        except NotFound:
            # Purged after the listing above
            continue
    return reports


async def reconcile_loop(repository: ChatRepository, interval_seconds: int) -> None:
    """Background reconciliation, started from the app lifespan."""
    logger.info(f"Reconciliation loop started (every {interval_seconds}s)")
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            reports = reconcile_all(repository)
            logger.info(f"Reconciliation pass checked {len(reports)} chat(s)")
        except Exception as e:
            logger.error(f"Reconciliation pass failed: {e}")
