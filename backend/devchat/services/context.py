"""Builds the bounded message history sent to the generator."""

import logging
import re

from devchat.core.config import settings
from devchat.models.chat import ChatMessage, FileAttachment
from devchat.services.llm.base import Message

logger = logging.getLogger(__name__)

TEXT_MIME_PREFIXES = (
    "text/",
    "application/json",
    "application/xml",
    "application/javascript",
    "application/csv",
    "application/sql",
)

TEXT_EXTENSIONS = re.compile(
    r"\.(txt|md|json|xml|csv|sql|js|ts|py|java|cpp|c|h|css|html|yml|yaml|toml|ini|cfg|conf|log|readme|dockerfile)$"
)

CONTINUATION_INSTRUCTION = (
    "Please continue your previous response from where you left off. "
    "Complete your full answer without repeating what you already said."
)


def is_text_file(name: str | None, mime_type: str | None) -> bool:
    if mime_type and mime_type.startswith(TEXT_MIME_PREFIXES):
        return True
    if name and TEXT_EXTENSIONS.search(name.lower()):
        return True
    return False


def format_file_size(size: int | None) -> str:
    if not size:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    if unit == 0:
        return f"{int(value)} B"
    return f"{value:.1f} {units[unit]}"


def format_files_for_context(files: list[FileAttachment]) -> str:
    """Render attachments as a labelled block. Only text-like files contribute content."""
    if not files:
        return ""

    parts = ["\n\n--- ATTACHED FILES ---\n"]
    for f in files:
        parts.append(f"\nFile: {f.name}")
        parts.append(f"\nType: {f.type}")
        parts.append(f"\nSize: {f.size if f.size is not None else 'unknown'} bytes")
        if f.content is not None and is_text_file(f.name, f.type):
            parts.append(f"\nContent:\n```\n{f.content}\n```")
        parts.append("\n---\n")
    return "".join(parts)


class ContextBuilder:
    def __init__(self, limit: int | None = None, tail_chars: int | None = None):
        self.limit = limit or settings.context_limit
        self.tail_chars = settings.continuation_tail_chars if tail_chars is None else tail_chars

    def build(
        self,
        history: list[ChatMessage],
        files: list[FileAttachment] | None = None,
        extra_instruction: str | None = None,
    ) -> list[Message]:
        """Most recent ``limit`` messages, with attachments appended to the last user message."""
        context = [
            Message(role="user" if m.role == "user" else "assistant", content=m.content)
            for m in history[-self.limit:]
        ]

        file_context = format_files_for_context(files or [])
        if file_context:
            for message in reversed(context):
                if message.role == "user":
                    message.content += file_context
                    break
            else:
                logger.warning("Attachments supplied but no user message in context; dropping them")

        if extra_instruction:
            context.append(Message(role="user", content=extra_instruction))

        logger.debug(f"Built context: {len(context)} message(s), {len(files or [])} file(s)")
        return context

    def continuation_instruction(self, prior_partial_text: str) -> str:
        if self.tail_chars <= 0 or not prior_partial_text:
            return CONTINUATION_INSTRUCTION
        tail = prior_partial_text[-self.tail_chars:]
        return f"{CONTINUATION_INSTRUCTION}\n\nYour previous response ended with:\n{tail}"

    def build_continuation(self, history: list[ChatMessage], prior_partial_text: str) -> list[Message]:
        """History without the incomplete assistant turn, plus a resume instruction."""
        trimmed = list(history)
        for i in range(len(trimmed) - 1, -1, -1):
            if trimmed[i].role == "assistant":
                del trimmed[i]
                break
        return self.build(trimmed, extra_instruction=self.continuation_instruction(prior_partial_text))
