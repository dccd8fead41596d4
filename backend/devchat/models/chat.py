"""Chat, message and code artifact records as persisted in the store."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FileAttachment(BaseModel):
    name: str = "unknown"
    type: str = "unknown"
    size: int | None = None
    content: str | None = None  # only present on the request, never persisted

    def descriptor(self) -> "FileAttachment":
        return FileAttachment(name=self.name, type=self.type, size=self.size)


class ChatSession(BaseModel):
    id: str
    created_at: datetime = Field(default_factory=utcnow)
    last_updated: datetime = Field(default_factory=utcnow)
    message_count: int = 0
    preview: str = ""


class ChatMessage(BaseModel):
    id: str
    session_id: str
    role: str  # "user" | "assistant"
    content: str
    attached_files: list[FileAttachment] = Field(default_factory=list)
    artifact_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


class CodeArtifact(BaseModel):
    id: str
    parent_id: str
    session_id: str
    type: str = "code_block"
    language: str = ""
    code: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
