"""Human-readable identifiers for chats, messages and code artifacts.

Grammar:
    chat(<epoch ms>)            session
    user(<n>) / assistant(<n>)  message, n counts per role within a chat
    <message>_code(<k>)         k-th fenced code block of a message
"""

import re
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from devchat.core.errors import InvalidIdentifier

ROLE_TAGS = {"user": "user", "assistant": "assistant"}

_SESSION_RE = re.compile(r"^chat\(([1-9]\d*)\)$")
_MESSAGE_RE = re.compile(r"^(user|assistant)\(([1-9]\d*)\)$")
_ARTIFACT_RE = re.compile(r"^((user|assistant)\(([1-9]\d*)\))_code\(([1-9]\d*)\)$")


class IdKind(str, Enum):
    SESSION = "session"
    MESSAGE = "message"
    ARTIFACT = "artifact"
    MESSAGE_OR_ARTIFACT = "message_or_artifact"


@dataclass(frozen=True)
class MessageIdParts:
    role: str
    sequence: int


@dataclass(frozen=True)
class ArtifactIdParts:
    parent_id: str
    role: str
    sequence: int
    index: int


def counter_key(session_id: str, role: str) -> str:
    return f"chat:counter:{session_id}:{ROLE_TAGS[role]}"


def format_message_id(role: str, sequence: int) -> str:
    return f"{ROLE_TAGS[role]}({sequence})"


def artifact_id(parent_message_id: str, occurrence_index: int) -> str:
    return f"{parent_message_id}_code({occurrence_index})"


def validate(value: str, kind: IdKind | str) -> bool:
    if not isinstance(value, str):
        return False
    kind = IdKind(kind)
    if kind is IdKind.SESSION:
        return _SESSION_RE.match(value) is not None
    if kind is IdKind.MESSAGE:
        return _MESSAGE_RE.match(value) is not None
    if kind is IdKind.ARTIFACT:
        return _ARTIFACT_RE.match(value) is not None
    return _MESSAGE_RE.match(value) is not None or _ARTIFACT_RE.match(value) is not None


def require(value: str, kind: IdKind | str) -> str:
    """Return ``value`` unchanged or raise InvalidIdentifier."""
    if not validate(value, kind):
        raise InvalidIdentifier(str(value), IdKind(kind).value)
    return value


def parse_message_id(value: str) -> MessageIdParts:
    match = _MESSAGE_RE.match(value or "")
    if not match:
        raise InvalidIdentifier(str(value), IdKind.MESSAGE.value)
    return MessageIdParts(role=match.group(1), sequence=int(match.group(2)))


def parse_artifact_id(value: str) -> ArtifactIdParts:
    match = _ARTIFACT_RE.match(value or "")
    if not match:
        raise InvalidIdentifier(str(value), IdKind.ARTIFACT.value)
    return ArtifactIdParts(
        parent_id=match.group(1),
        role=match.group(2),
        sequence=int(match.group(3)),
        index=int(match.group(4)),
    )


def session_timestamp(session_id: str) -> datetime:
    """Creation time embedded in a chat id, for display and sorting."""
    match = _SESSION_RE.match(session_id or "")
    if not match:
        raise InvalidIdentifier(str(session_id), IdKind.SESSION.value)
    return datetime.fromtimestamp(int(match.group(1)) / 1000, tz=timezone.utc)


class IdentifierAllocator:
    """Allocates chat and message ids.

    Message sequence numbers live only in the store; two orchestrators racing on
    the same chat are serialised by the store's atomic increment.
    """

    def __init__(self, store, clock=time.time):
        self.store = store
        self._clock = clock
        self._last_ms = 0
        self._lock = threading.Lock()

    def new_session_id(self) -> str:
        with self._lock:
            now_ms = int(self._clock() * 1000)
            if now_ms <= self._last_ms:
                now_ms = self._last_ms + 1
            self._last_ms = now_ms
        return f"chat({now_ms})"

    def next_message_id(self, session_id: str, role: str) -> str:
        require(session_id, IdKind.SESSION)
        if role not in ROLE_TAGS:
            raise ValueError(f"Unknown role: {role}")
        sequence = self.store.atomic_increment(counter_key(session_id, role))
        return format_message_id(role, sequence)

    @staticmethod
    def artifact_id(parent_message_id: str, occurrence_index: int) -> str:
        return artifact_id(parent_message_id, occurrence_index)

    @staticmethod
    def validate(value: str, kind: IdKind | str) -> bool:
        return validate(value, kind)
