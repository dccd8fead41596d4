"""Abstract key-value store. All backends must implement this."""

from abc import ABC, abstractmethod
from typing import Any


class BaseStore(ABC):
    @abstractmethod
    def atomic_increment(self, key: str) -> int:
        """Increment the counter at ``key`` and return the new value (first call returns 1)."""
        ...

    @abstractmethod
    def put(self, key: str, value: Any) -> None:
        """Store a JSON-serialisable value."""
        ...

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the stored value or None when absent."""
        ...

    @abstractmethod
    def list(self, prefix: str) -> list[str]:
        """Return all keys starting with ``prefix``, sorted."""
        ...

    @abstractmethod
    def delete(self, key: str) -> int:
        """Delete ``key``. Returns the number of records removed (0 or 1)."""
        ...

    def ping(self) -> bool:
        self.get("health:ping")
        return True
