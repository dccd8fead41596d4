"""Process-local store, used by tests and single-process deployments."""

import json
from threading import Lock
from typing import Any

from devchat.services.store.base import BaseStore


class InMemoryStore(BaseStore):
    def __init__(self) -> None:
        self._values: dict[str, str] = {}
        self._counters: dict[str, int] = {}
        self._lock = Lock()

    def atomic_increment(self, key: str) -> int:
        with self._lock:
            value = self._counters.get(key, 0) + 1
            self._counters[key] = value
            return value

    def put(self, key: str, value: Any) -> None:
        encoded = json.dumps(value)
        with self._lock:
            self._values[key] = encoded

    def get(self, key: str) -> Any | None:
        with self._lock:
            if key in self._counters:
                return self._counters[key]
            encoded = self._values.get(key)
        return json.loads(encoded) if encoded is not None else None

    def list(self, prefix: str) -> list[str]:
        with self._lock:
            keys = [k for k in self._values if k.startswith(prefix)]
            keys += [k for k in self._counters if k.startswith(prefix)]
        return sorted(keys)

    def delete(self, key: str) -> int:
        with self._lock:
            removed = int(self._values.pop(key, None) is not None)
            removed += int(self._counters.pop(key, None) is not None)
        return removed
