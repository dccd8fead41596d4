"""Decides whether a generation finished cleanly or looks cut off.

The verdict is advisory: it only tells the client that a continuation may be
worth requesting. It never blocks the turn from completing.
"""

import re
from dataclasses import dataclass
from enum import Enum

from devchat.core.config import settings

NORMAL_STOP_REASONS = {"stop"}
LENGTH_STOP_REASONS = {"length", "max_tokens"}

# Checked against the trailing window, in priority order
TRUNCATION_MARKERS = [
    ("ellipsis", re.compile(r"(\.\.\.|…)\s*$")),
    ("continued_marker", re.compile(r"\[continued\]\s*$", re.IGNORECASE)),
    ("truncated_marker", re.compile(r"\[truncated\]\s*$", re.IGNORECASE)),
    ("elided_marker", re.compile(r"\[\.\.\.\]\s*$")),
    ("continued_paren", re.compile(r"\(continued\)\s*$", re.IGNORECASE)),
    ("dangling_dash", re.compile(r"--\s*$")),
]

_CLEAN_ENDINGS = [
    re.compile(r"[.!?]\s*$"),
    re.compile(r"```\s*$"),
    re.compile(r"\*\*\s*$"),
]


class CompletionStatus(str, Enum):
    FINISHED = "finished"
    FINISHED_WITH_REASON = "finished-with-reason"
    APPARENTLY_TRUNCATED = "apparently-truncated"


@dataclass(frozen=True)
class Verdict:
    status: CompletionStatus
    reason: str | None = None
    heuristic: str | None = None

    @property
    def is_truncated(self) -> bool:
        return self.status is CompletionStatus.APPARENTLY_TRUNCATED

    def to_payload(self) -> dict:
        return {
            "status": self.status.value,
            "reason": self.reason,
            "heuristic": self.heuristic,
            "is_complete": not self.is_truncated,
        }


@dataclass(frozen=True)
class ClassifierPolicy:
    tail_window: int = 100
    abrupt_window: int = 50
    abrupt_min_length: int = 100

    @classmethod
    def from_settings(cls) -> "ClassifierPolicy":
        return cls(
            tail_window=settings.truncation_tail_window,
            abrupt_window=settings.abrupt_ending_window,
            abrupt_min_length=settings.abrupt_min_length,
        )


class CompletionClassifier:
    def __init__(self, policy: ClassifierPolicy | None = None):
        self.policy = policy or ClassifierPolicy.from_settings()

    def truncation_marker(self, text: str) -> str | None:
        tail = text[-self.policy.tail_window:]
        for name, pattern in TRUNCATION_MARKERS:
            if pattern.search(tail):
                return name
        return None

    def ends_abruptly(self, text: str) -> bool:
        if len(text) <= self.policy.abrupt_min_length:
            return False
        tail = text[-self.policy.abrupt_window:]
        return not any(pattern.search(tail) for pattern in _CLEAN_ENDINGS)

    def classify(self, text: str, done: bool = False, done_reason: str | None = None) -> Verdict:
        """Classify accumulated ``text`` given the generator's final-frame signal.

        Explicit truncation markers always win. The abrupt-ending check only
        runs when the generator did not report a normal stop.
        """
        text = text or ""
        normal_stop = done and (done_reason is None or done_reason in NORMAL_STOP_REASONS)

        marker = self.truncation_marker(text)
        if marker:
            return Verdict(CompletionStatus.APPARENTLY_TRUNCATED, done_reason, marker)

        if done and done_reason in LENGTH_STOP_REASONS:
            return Verdict(CompletionStatus.APPARENTLY_TRUNCATED, done_reason, "length_limit")

        if not normal_stop and self.ends_abruptly(text):
            return Verdict(CompletionStatus.APPARENTLY_TRUNCATED, done_reason, "abrupt_ending")

        if normal_stop:
            return Verdict(CompletionStatus.FINISHED, done_reason)
        if done_reason:
            return Verdict(CompletionStatus.FINISHED_WITH_REASON, done_reason)
        return Verdict(CompletionStatus.FINISHED)
