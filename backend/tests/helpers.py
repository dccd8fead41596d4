"""Test doubles and helpers shared across test modules."""

import asyncio
import json

from devchat.services.llm.base import BaseGenerator, GenerationChunk


def text_chunks(*parts: str, done_reason: str | None = "stop") -> list[GenerationChunk]:
    """Generator chunks for ``parts``, the last one carrying the done signal."""
    chunks = [GenerationChunk(content=p) for p in parts]
    if done_reason is not None:
        chunks.append(GenerationChunk(content="", done=True, done_reason=done_reason))
    return chunks


class FakeGenerator(BaseGenerator):
    """Generator that replays canned chunks, optionally failing part way through."""

    model = "fake-model"

    def __init__(self, chunks=None, error: Exception | None = None, fail_after: int | None = None):
        self.chunks = chunks if chunks is not None else text_chunks("Hello", " from", " the model.")
        self.error = error
        self.fail_after = fail_after
        self.calls: list[list] = []

    async def stream(self, messages, options=None):
        self.calls.append(list(messages))
        for i, chunk in enumerate(self.chunks):
            if self.error is not None and i == (self.fail_after or 0):
                raise self.error
            yield chunk
        if self.error is not None and not self.chunks:
            raise self.error


def run_turn(make_handle):
    """Open a turn with ``make_handle()`` and drain its stream. Returns (handle, events)."""
    async def go():
        handle = await make_handle()
        events = [event async for event in handle.stream]
        return handle, events

    return asyncio.run(go())


def event_names(events) -> list[str]:
    return [e.event for e in events]


def parse_sse(body: str) -> list[tuple[str, dict]]:
    events = []
    for frame in body.strip().split("\n\n"):
        if not frame.strip():
            continue
        name, data = None, None
        for line in frame.split("\n"):
            if line.startswith("event: "):
                name = line[len("event: "):]
            elif line.startswith("data: "):
                data = json.loads(line[len("data: "):])
        events.append((name, data))
    return events
