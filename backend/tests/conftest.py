"""Shared test fixtures for backend tests."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from devchat.api.deps import get_orchestrator
from devchat.services.orchestrator import ConversationOrchestrator
from devchat.services.store import InMemoryStore, SQLStore
from helpers import FakeGenerator

# In-memory SQLite with StaticPool so all connections (including threads) share one DB
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@pytest.fixture(autouse=True)
def setup_test_db():
    """Create all tables before each test, drop after."""
    import devchat.models  # noqa: F401 - register models
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def db_engine():
    return test_engine


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def orchestrator(store, generator):
    return ConversationOrchestrator(store, generator, relay_mode="buffered", pace_delay=0)


@pytest.fixture
def sql_orchestrator(generator):
    return ConversationOrchestrator(SQLStore(test_engine), generator, relay_mode="buffered", pace_delay=0)


@pytest.fixture
def client(sql_orchestrator):
    """FastAPI TestClient backed by the in-memory SQL store and a fake generator."""
    with patch("devchat.main.init_db", lambda: None):
        from devchat.main import app

        app.dependency_overrides[get_orchestrator] = lambda: sql_orchestrator

        with TestClient(app) as c:
            yield c

        app.dependency_overrides.clear()
