"""Chat, message and artifact records on top of a key-value store.

Key layout:
    chat:meta:<chat>                session metadata
    chat:counter:<chat>:<role>      per-role message sequence
    message:<chat>:<message>        message record
    artifact:<chat>:<artifact>      code artifact record
"""

import logging

from devchat.core.identifiers import ROLE_TAGS, IdKind, counter_key, require
from devchat.models.chat import ChatMessage, ChatSession, CodeArtifact, utcnow
from devchat.services.store.base import BaseStore

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 100


def meta_key(chat_id: str) -> str:
    return f"chat:meta:{chat_id}"


def message_key(chat_id: str, message_id: str) -> str:
    return f"message:{chat_id}:{message_id}"


def artifact_key(chat_id: str, artifact_id: str) -> str:
    return f"artifact:{chat_id}:{artifact_id}"


def make_preview(content: str) -> str:
    return (content or "")[-PREVIEW_LENGTH:]


class ChatRepository:
    def __init__(self, store: BaseStore):
        self.store = store

    # --- Sessions ---

    def get_session(self, chat_id: str) -> ChatSession | None:
        data = self.store.get(meta_key(chat_id))
        return ChatSession.model_validate(data) if data else None

    def ensure_session(self, chat_id: str) -> ChatSession:
        """Return the session, creating its metadata on first use."""
        require(chat_id, IdKind.SESSION)
        existing = self.get_session(chat_id)
        if existing:
            return existing
        session = ChatSession(id=chat_id)
        self.store.put(meta_key(chat_id), session.model_dump(mode="json"))
        logger.info(f"Created chat {chat_id}")
        return session

    def list_sessions(self) -> list[ChatSession]:
        sessions = []
        for key in self.store.list("chat:meta:"):
            data = self.store.get(key)
            if data:
                sessions.append(ChatSession.model_validate(data))
        return sorted(sessions, key=lambda s: s.last_updated, reverse=True)

    def refresh_session(self, chat_id: str) -> ChatSession | None:
        """Recompute message_count and preview from the stored messages.

        Returns None, writing nothing, for a chat with neither metadata nor messages.
        """
        session = self.get_session(chat_id)
        messages = self.list_messages(chat_id)
        if session is None:
            if not messages:
                return None
            session = ChatSession(id=chat_id)
        session.message_count = len(messages)
        session.preview = make_preview(messages[-1].content) if messages else ""
        session.last_updated = utcnow()
        self.store.put(meta_key(chat_id), session.model_dump(mode="json"))
        return session

    # --- Messages ---

    def save_message(self, message: ChatMessage) -> ChatMessage:
        """Write the message, then bring the session metadata up to date.

        The two writes are not atomic; a failure between them leaves the
        metadata behind the message list until the next refresh.
        """
        self.store.put(message_key(message.session_id, message.id), message.model_dump(mode="json"))
        self.refresh_session(message.session_id)
        logger.info(
            f"Saved message {message.id} in {message.session_id} "
            f"({len(message.content)} chars, {len(message.artifact_ids)} artifact(s))"
        )
        return message

    def get_message(self, chat_id: str, message_id: str) -> ChatMessage | None:
        data = self.store.get(message_key(chat_id, message_id))
        return ChatMessage.model_validate(data) if data else None

    def list_messages(self, chat_id: str, limit: int | None = None) -> list[ChatMessage]:
        """Messages in chronological order; ``limit`` keeps the most recent ones."""
        messages = []
        for key in self.store.list(f"message:{chat_id}:"):
            data = self.store.get(key)
            if data:
                messages.append(ChatMessage.model_validate(data))
        messages.sort(key=lambda m: (m.created_at, m.id))
        if limit is not None:
            messages = messages[-limit:] if limit > 0 else []
        return messages

    def latest_assistant_message(self, chat_id: str) -> ChatMessage | None:
        for message in reversed(self.list_messages(chat_id)):
            if message.role == "assistant":
                return message
        return None

    # --- Artifacts ---

    def save_artifact(self, artifact: CodeArtifact) -> CodeArtifact:
        self.store.put(artifact_key(artifact.session_id, artifact.id), artifact.model_dump(mode="json"))
        return artifact

    def get_artifact(self, chat_id: str, artifact_id: str) -> CodeArtifact | None:
        data = self.store.get(artifact_key(chat_id, artifact_id))
        return CodeArtifact.model_validate(data) if data else None

    def list_artifacts(self, chat_id: str, parent_id: str | None = None) -> list[CodeArtifact]:
        prefix = f"artifact:{chat_id}:"
        if parent_id:
            prefix += f"{parent_id}_code("
        artifacts = []
        for key in self.store.list(prefix):
            data = self.store.get(key)
            if data:
                artifacts.append(CodeArtifact.model_validate(data))
        return sorted(artifacts, key=lambda a: (a.parent_id, a.metadata.get("block_index", 0)))

    def delete_artifact(self, chat_id: str, artifact_id: str) -> int:
        return self.store.delete(artifact_key(chat_id, artifact_id))

    def message_details(self, chat_id: str, message_id: str) -> tuple[ChatMessage, list[CodeArtifact]] | None:
        message = self.get_message(chat_id, message_id)
        if message is None:
            return None
        artifacts = [a for a in (self.get_artifact(chat_id, aid) for aid in message.artifact_ids) if a]
        return message, artifacts

    # --- Purge ---

    def purge_session(self, chat_id: str) -> int:
        """Remove a chat and everything it owns. Returns the number of records deleted."""
        deleted = 0
        for prefix in (f"artifact:{chat_id}:", f"message:{chat_id}:"):
            for key in self.store.list(prefix):
                deleted += self.store.delete(key)
        for role in ROLE_TAGS:
            deleted += self.store.delete(counter_key(chat_id, role))
        deleted += self.store.delete(meta_key(chat_id))
        logger.info(f"Purged chat {chat_id}: {deleted} record(s)")
        return deleted

    def purge_all(self) -> int:
        deleted = 0
        for prefix in ("artifact:", "message:", "chat:"):
            for key in self.store.list(prefix):
                deleted += self.store.delete(key)
        logger.info(f"Purged all chats: {deleted} record(s)")
        return deleted
