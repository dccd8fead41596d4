"""Abstract generator interface. All model providers must implement this."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator

from devchat.core.config import settings


@dataclass
class Message:
    role: str  # "user" | "assistant" | "system"
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class GenerationOptions:
    temperature: float = 0.7
    top_p: float = 0.9
    top_k: int = 40
    num_ctx: int = 8192
    num_predict: int = -1  # -1 = no output-length cap
    repeat_penalty: float = 1.1
    repeat_last_n: int = 64
    stop: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "top_k": self.top_k,
            "num_ctx": self.num_ctx,
            "num_predict": self.num_predict,
            "repeat_penalty": self.repeat_penalty,
            "repeat_last_n": self.repeat_last_n,
            "stop": list(self.stop),
        }


@dataclass
class GenerationChunk:
    content: str
    done: bool = False
    done_reason: str | None = None


@dataclass
class GenerationResult:
    text: str
    chunks: list[GenerationChunk]
    model: str
    done: bool = False
    done_reason: str | None = None


def options_from_settings() -> GenerationOptions:
    return GenerationOptions(
        temperature=settings.model_temperature,
        top_p=settings.model_top_p,
        top_k=settings.model_top_k,
        num_ctx=settings.model_num_ctx,
        num_predict=settings.model_num_predict,
        repeat_penalty=settings.model_repeat_penalty,
        repeat_last_n=settings.model_repeat_last_n,
    )


class BaseGenerator(ABC):
    model: str = ""

    @abstractmethod
    def stream(
        self, messages: list[Message], options: GenerationOptions | None = None
    ) -> AsyncIterator[GenerationChunk]:
        """Yield chunks as the upstream delivers them. The last chunk carries done=True."""
        ...

    async def generate(
        self, messages: list[Message], options: GenerationOptions | None = None
    ) -> GenerationResult:
        """Receive the whole response before returning it."""
        chunks = [chunk async for chunk in self.stream(messages, options)]
        final = chunks[-1] if chunks else GenerationChunk("")
        return GenerationResult(
            text="".join(c.content for c in chunks),
            chunks=chunks,
            model=self.model,
            done=final.done,
            done_reason=final.done_reason,
        )

    async def health_check(self) -> tuple[bool, str]:
        return True, "ok"
