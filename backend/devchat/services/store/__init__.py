"""Store factory."""

from devchat.core.config import settings
from devchat.services.store.base import BaseStore
from devchat.services.store.memory import InMemoryStore
from devchat.services.store.sql import SQLStore

__all__ = ["BaseStore", "InMemoryStore", "SQLStore", "get_store"]


def get_store() -> BaseStore:
    """Factory function that returns the configured store backend."""
    if settings.store_backend == "sql":
        from devchat.core.database import engine
        return SQLStore(engine)
    elif settings.store_backend == "memory":
        return InMemoryStore()
    else:
        raise ValueError(f"Unknown store backend: {settings.store_backend}")
