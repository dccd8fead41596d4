"""Shared service instances for the API routes."""

from functools import lru_cache

from fastapi import Depends

from devchat.services.llm import get_generator
from devchat.services.orchestrator import ConversationOrchestrator
from devchat.services.repository import ChatRepository
from devchat.services.store import get_store


@lru_cache
def get_orchestrator() -> ConversationOrchestrator:
    return ConversationOrchestrator(get_store(), get_generator())


def get_repository(orchestrator: ConversationOrchestrator = Depends(get_orchestrator)) -> ChatRepository:
    return orchestrator.repository
