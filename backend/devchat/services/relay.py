"""Republishes generator output to a client as an ordered event sequence.

A turn produces, in order:

    session-id
    content*                 one per delta chunk
    completion-status
    continuation-available   only when the output looks truncated
    done

or ends with a single ``error`` event and no ``done``.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from devchat.core.config import settings
from devchat.services.completion import Verdict
from devchat.services.llm.base import GenerationChunk

logger = logging.getLogger(__name__)

SESSION_ID = "session-id"
CONTENT = "content"
COMPLETION_STATUS = "completion-status"
CONTINUATION_AVAILABLE = "continuation-available"
DONE = "done"
ERROR = "error"


@dataclass(frozen=True)
class StreamEvent:
    event: str
    data: dict[str, Any] = field(default_factory=dict)

    def encode(self) -> str:
        """Server-sent events frame."""
        return f"event: {self.event}\ndata: {json.dumps(self.data)}\n\n"

    def as_json(self) -> dict[str, Any]:
        return {"event": self.event, "data": self.data}


def session_event(session_id: str) -> StreamEvent:
    return StreamEvent(SESSION_ID, {"chat_id": session_id})


def content_event(delta: str) -> StreamEvent:
    return StreamEvent(CONTENT, {"content": delta})


def completion_event(verdict: Verdict, **extra: Any) -> StreamEvent:
    return StreamEvent(COMPLETION_STATUS, {**verdict.to_payload(), **extra})


def continuation_event(session_id: str, message_id: str | None) -> StreamEvent:
    return StreamEvent(CONTINUATION_AVAILABLE, {"chat_id": session_id, "message_id": message_id})


def done_event() -> StreamEvent:
    return StreamEvent(DONE, {"done": True})


def error_event(message: str, category: str | None = None) -> StreamEvent:
    return StreamEvent(ERROR, {"error": message, "category": category})


class StreamRelay:
    """Drains generator chunks into ``content`` events.

    Pacing sleeps briefly after every ``pace_every`` chunks so a response
    that arrived all at once does not flood the client connection.
    """

    def __init__(
        self,
        pace_every: int | None = None,
        pace_delay: float | None = None,
        cancelled: asyncio.Event | None = None,
    ):
        self.pace_every = settings.relay_pace_every if pace_every is None else pace_every
        self.pace_delay = settings.relay_pace_delay if pace_delay is None else pace_delay
        self.cancelled = cancelled or asyncio.Event()
        self.text = ""
        self.chunk_count = 0
        self.done = False
        self.done_reason: str | None = None

    async def relay(self, chunks: AsyncIterator[GenerationChunk]) -> AsyncIterator[StreamEvent]:
        """Yield one content event per non-empty chunk, accumulating the full text.

        Stops early, without raising, when ``cancelled`` is set. Errors from
        the chunk source propagate to the caller.
        """
        async for chunk in chunks:
            if self.cancelled.is_set():
                logger.info(f"Relay cancelled after {self.chunk_count} chunk(s)")
                return

            if chunk.content:
                self.text += chunk.content
                self.chunk_count += 1
                yield content_event(chunk.content)
                if self.pace_every > 0 and self.chunk_count % self.pace_every == 0:
                    await asyncio.sleep(self.pace_delay)

            if chunk.done:
                self.done = True
                self.done_reason = chunk.done_reason
                break

        logger.debug(f"Relayed {self.chunk_count} chunk(s), {len(self.text)} chars")


async def replay(chunks: list[GenerationChunk]) -> AsyncIterator[GenerationChunk]:
    """Async view over an already buffered response."""
    for chunk in chunks:
        yield chunk
