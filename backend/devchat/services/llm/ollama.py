"""Ollama chat provider over its NDJSON streaming API."""

import json
import logging
from typing import AsyncIterator

import httpx

from devchat.core.config import settings
from devchat.core.errors import GeneratorError, GeneratorUnavailable, MalformedGeneratorOutput
from devchat.services.llm.base import (
    BaseGenerator,
    GenerationChunk,
    GenerationOptions,
    GenerationResult,
    Message,
    options_from_settings,
)

logger = logging.getLogger(__name__)


def parse_frame(line: str) -> GenerationChunk | None:
    """Parse one NDJSON frame.

    Returns None for frames without content or a done flag. Raises
    GeneratorError for frames carrying an explicit error and
    MalformedGeneratorOutput for frames that are not JSON objects.
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise MalformedGeneratorOutput(f"Unparseable frame: {line[:200]}") from e
    if not isinstance(data, dict):
        raise MalformedGeneratorOutput(f"Unexpected frame: {line[:200]}")

    if data.get("error"):
        raise GeneratorError(f"Ollama error: {data['error']}")

    content = (data.get("message") or {}).get("content") or ""
    done = bool(data.get("done"))
    if not content and not done:
        return None
    return GenerationChunk(content=content, done=done, done_reason=data.get("done_reason"))


def iter_frames(lines) -> list[GenerationChunk]:
    chunks = []
    for line in lines:
        if not line.strip():
            continue
        try:
            chunk = parse_frame(line)
        except MalformedGeneratorOutput as e:
            logger.warning(f"Skipping malformed frame: {e}")
            continue
        if chunk is None:
            continue
        chunks.append(chunk)
        if chunk.done:
            break
    return chunks


class OllamaGenerator(BaseGenerator):
    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.model_url).rstrip("/")
        self.model = model or settings.model_name
        self._transport = transport
        self._timeout = httpx.Timeout(settings.model_timeout, connect=settings.model_connect_timeout)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self._timeout, transport=self._transport)

    def _payload(self, messages: list[Message], options: GenerationOptions | None) -> dict:
        options = options or options_from_settings()
        logger.info(f"Ollama request: model={self.model} messages={len(messages)} options={options.to_dict()}")
        return {
            "model": self.model,
            "messages": [m.to_dict() for m in messages],
            "stream": True,
            "options": options.to_dict(),
        }

    @staticmethod
    def _raise_for_status(status_code: int, body: str) -> None:
        if status_code != 200:
            snippet = body[:200] if body else "No response body"
            logger.error(f"Ollama returned HTTP {status_code}: {snippet}")
            raise GeneratorError(f"Ollama returned HTTP {status_code}: {snippet}", status_code=status_code)

    async def generate(
        self, messages: list[Message], options: GenerationOptions | None = None
    ) -> GenerationResult:
        payload = self._payload(messages, options)
        try:
            async with self._client() as client:
                resp = await client.post("/api/chat", json=payload)
        except httpx.TransportError as e:
            logger.error(f"Failed to connect to Ollama at {self.base_url}: {e}")
            raise GeneratorUnavailable(f"Failed to connect to Ollama: {e}") from e

        self._raise_for_status(resp.status_code, resp.text)
        chunks = iter_frames(resp.text.splitlines())
        final = chunks[-1] if chunks else GenerationChunk("")
        text = "".join(c.content for c in chunks)
        logger.info(f"Ollama response: {len(text)} chars in {len(chunks)} chunk(s)")
        return GenerationResult(
            text=text,
            chunks=chunks,
            model=self.model,
            done=final.done,
            done_reason=final.done_reason,
        )

    async def stream(
        self, messages: list[Message], options: GenerationOptions | None = None
    ) -> AsyncIterator[GenerationChunk]:
        payload = self._payload(messages, options)
        try:
            async with self._client() as client:
                async with client.stream("POST", "/api/chat", json=payload) as resp:
                    if resp.status_code != 200:
                        body = (await resp.aread()).decode("utf-8", errors="replace")
                        self._raise_for_status(resp.status_code, body)
                    async for line in resp.aiter_lines():
                        for chunk in iter_frames([line]):
                            yield chunk
                            if chunk.done:
                                return
        except httpx.TransportError as e:
            logger.error(f"Ollama connection failed during streaming: {e}")
            raise GeneratorUnavailable(f"Failed to connect to Ollama: {e}") from e

    async def health_check(self) -> tuple[bool, str]:
        try:
            async with self._client() as client:
                resp = await client.get("/api/tags")
        except httpx.TransportError as e:
            return False, f"Cannot connect to Ollama: {e}"
        if resp.status_code != 200:
            return False, f"Ollama returned HTTP {resp.status_code}"
        try:
            models = resp.json().get("models") or []
        except ValueError:
            return False, "Invalid response from Ollama"
        if not any(m.get("name") == self.model for m in models):
            return False, f"Model '{self.model}' not found in Ollama"
        return True, "Ollama is healthy and model is available"
