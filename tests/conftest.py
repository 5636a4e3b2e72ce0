"""Shared fixtures: in-memory store with a controllable clock, engine and API client."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from app.schemas.report_context import EnhancementRequest
from app.services.context_store import ContextStore
from app.services.enhancement_engine import EnhancementEngine


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def store(clock):
    return ContextStore(clock=clock)


@pytest.fixture
def engine(store, clock):
    return EnhancementEngine(store, clock=clock)


@pytest.fixture
def conversation_id(faker):
    return f"conv-{faker.uuid4()}"


@pytest.fixture
def analyzed(engine, conversation_id):
    """Conversation whose first prompt produced a single-stock AAPL report."""
    engine.enhance(EnhancementRequest(conversation_id=conversation_id, prompt="Analyze AAPL"))
    return conversation_id


@pytest.fixture
def client(store):
    app = create_app(testing=True, store=store)
    with TestClient(app) as c:
        yield c
