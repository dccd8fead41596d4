"""Google Gemini provider."""

import logging
from typing import AsyncIterator

import httpx
from google import genai
from google.genai import errors, types

from devchat.core.config import settings
from devchat.core.errors import GeneratorError, GeneratorUnavailable
from devchat.services.llm.base import BaseGenerator, GenerationChunk, GenerationOptions, Message, options_from_settings

logger = logging.getLogger(__name__)

_FINISH_REASONS = {
    "STOP": "stop",
    "MAX_TOKENS": "length",
}


def _done_reason(finish_reason) -> str:
    name = getattr(finish_reason, "name", None) or str(finish_reason)
    return _FINISH_REASONS.get(name, name.lower())


class GeminiGenerator(BaseGenerator):
    def __init__(self, client: genai.Client | None = None):
        self.client = client or genai.Client(api_key=settings.gemini_api_key)
        self.model = settings.gemini_model

    def _config(self, messages: list[Message], options: GenerationOptions) -> types.GenerateContentConfig:
        system = "\n\n".join(m.content for m in messages if m.role == "system") or None
        return types.GenerateContentConfig(
            system_instruction=system,
            temperature=options.temperature,
            top_p=options.top_p,
            top_k=options.top_k,
            max_output_tokens=options.num_predict if options.num_predict > 0 else None,
        )

    async def stream(
        self, messages: list[Message], options: GenerationOptions | None = None
    ) -> AsyncIterator[GenerationChunk]:
        options = options or options_from_settings()
        contents = [
            {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
            for m in messages
            if m.role != "system"
        ]
        try:
            response = await self.client.aio.models.generate_content_stream(
                model=self.model,
                contents=contents,
                config=self._config(messages, options),
            )
            async for chunk in response:
                finish_reason = None
                if chunk.candidates and chunk.candidates[0].finish_reason:
                    finish_reason = _done_reason(chunk.candidates[0].finish_reason)
                if chunk.text or finish_reason:
                    yield GenerationChunk(
                        content=chunk.text or "",
                        done=finish_reason is not None,
                        done_reason=finish_reason,
                    )
        except errors.APIError as e:
            logger.error(f"Gemini returned {e.code}: {e.message}")
            raise GeneratorError(f"Gemini returned HTTP {e.code}: {e.message}", status_code=e.code) from e
        except httpx.TransportError as e:
            raise GeneratorUnavailable(f"Failed to connect to Gemini: {e}") from e
