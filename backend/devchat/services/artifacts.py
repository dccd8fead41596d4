"""Fenced code block extraction.

Blocks are found with a single pass over the lines of a message. An opening
fence is a line ending with three backticks and an optional language tag, so
prose may precede it on the same line ("Here: ```python"); the block ends at
the next line starting with three backticks. A fence
that never closes is left as plain text, since it usually means the response
was cut off mid-block.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from devchat.core.identifiers import artifact_id

logger = logging.getLogger(__name__)

FENCE = "```"
_OPENING_RE = re.compile(r"```([\w+#.-]*)[ \t]*$")


@dataclass(frozen=True)
class ExtractedBlock:
    id: str
    index: int
    language: str
    code: str
    start_line: int
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)


def find_code_blocks(text: str) -> list[tuple[str, str, int]]:
    """Return (language, code, start_line) for every closed fenced block, in document order."""
    blocks: list[tuple[str, str, int]] = []
    language: str | None = None
    body: list[str] = []
    start = 0

    for lineno, line in enumerate(text.split("\n")):
        stripped = line.rstrip("\r")
        if language is None:
            match = _OPENING_RE.search(stripped)
            if match:
                language = match.group(1)
                body = []
                start = lineno
        elif stripped.startswith(FENCE):
            blocks.append((language, "\n".join(body), start))
            language = None
        else:
            body.append(stripped)

    return blocks


def extract_code_blocks(parent_message_id: str, text: str) -> list[ExtractedBlock]:
    """Materialise the closed code blocks of ``text`` as artifacts of ``parent_message_id``.

    Ids depend only on the parent id and the 1-based position of the block, so
    running this twice over the same text gives identical results.
    """
    extracted = []
    for index, (language, code, start_line) in enumerate(find_code_blocks(text or ""), start=1):
        extracted.append(
            ExtractedBlock(
                id=artifact_id(parent_message_id, index),
                index=index,
                language=language,
                code=code,
                start_line=start_line,
                metadata={
                    "extracted_from_response": True,
                    "block_index": index,
                    "start_line": start_line,
                    "line_count": code.count("\n") + 1 if code else 0,
                },
            )
        )

    logger.debug(f"Extracted {len(extracted)} code block(s) from {parent_message_id}")
    return extracted
