"""Tests for the Gemini provider with a stubbed SDK client."""

import asyncio
from types import SimpleNamespace

import httpx
import pytest
from google.genai import types

from devchat.core.errors import GeneratorUnavailable
from devchat.services.llm.base import GenerationOptions, Message
from devchat.services.llm.gemini import GeminiGenerator


def _chunk(text, finish_reason=None):
    candidate = SimpleNamespace(finish_reason=finish_reason)
    return SimpleNamespace(text=text, candidates=[candidate])


class _Models:
    def __init__(self, chunks=None, error=None):
        self.chunks = chunks or []
        self.error = error
        self.calls = []

    async def generate_content_stream(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.error is not None:
            raise self.error

        async def iterate():
            for chunk in self.chunks:
                yield chunk

        return iterate()


def _generator(models: _Models) -> GeminiGenerator:
    return GeminiGenerator(client=SimpleNamespace(aio=SimpleNamespace(models=models)))


def _collect(generator, messages, options=None):
    async def go():
        return [chunk async for chunk in generator.stream(messages, options)]

    return asyncio.run(go())


def test_stream_maps_chunks_and_finish_reason():
    models = _Models([_chunk("Hello"), _chunk(" world."), _chunk(None, types.FinishReason.STOP)])
    chunks = _collect(_generator(models), [Message(role="user", content="hi")])

    assert [c.content for c in chunks] == ["Hello", " world.", ""]
    assert chunks[-1].done is True
    assert chunks[-1].done_reason == "stop"


def test_max_tokens_maps_to_length():
    models = _Models([_chunk("partial", types.FinishReason.MAX_TOKENS)])
    chunks = _collect(_generator(models), [Message(role="user", content="hi")])
    assert chunks == [chunks[0]]
    assert chunks[0].done_reason == "length"


def test_roles_and_options_forwarded():
    models = _Models([_chunk("ok", types.FinishReason.STOP)])
    messages = [
        Message(role="system", content="Be brief."),
        Message(role="user", content="q"),
        Message(role="assistant", content="a"),
        Message(role="user", content="q2"),
    ]
    _collect(_generator(models), messages, GenerationOptions(temperature=0.3, num_predict=-1))

    call = models.calls[0]
    assert [c["role"] for c in call["contents"]] == ["user", "model", "user"]
    assert call["config"].system_instruction == "Be brief."
    assert call["config"].temperature == 0.3
    assert call["config"].max_output_tokens is None


def test_transport_failure_is_unavailable():
    models = _Models(error=httpx.ConnectError("refused"))
    with pytest.raises(GeneratorUnavailable):
        _collect(_generator(models), [Message(role="user", content="hi")])
