"""Generator factory."""

from devchat.core.config import settings
from devchat.services.llm.base import BaseGenerator


def get_generator() -> BaseGenerator:
    """Factory function that returns the configured model provider."""
    if settings.llm_provider == "ollama":
        from devchat.services.llm.ollama import OllamaGenerator
        return OllamaGenerator()
    elif settings.llm_provider == "gemini":
        from devchat.services.llm.gemini import GeminiGenerator
        return GeminiGenerator()
    else:
        raise ValueError(f"Unknown LLM provider: {settings.llm_provider}")
