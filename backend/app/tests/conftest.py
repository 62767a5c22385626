# tests/conftest.py
import asyncio

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models import triage  # import your models to register with Base
from app.models.triage_models import RawTurn
from app.services.humanizer import NarrativeModel
from app.services.session_store import InMemorySessionStore, StaleSessionError


@pytest.fixture(scope="session")
def engine():
    # One shared connection so the TestClient worker thread sees the same database
    return create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

@pytest.fixture(scope="session")
def tables(engine):
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)

@pytest.fixture
def db_session(engine, tables):
    """Provides a transactional scope around each test."""
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(bind=connection)
    session = SessionLocal()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def store():
    return InMemorySessionStore()


def make_turn(text, session_id="session-1", **hints):
    return RawTurn(text=text, session_id=session_id, **hints)


class FakeNarrativeModel(NarrativeModel):
    """Returns a canned payload and records the contexts it was given."""

    def __init__(self, payload=None, delay=0.0, error=None):
        self.payload = payload if payload is not None else {
            "risk_rationale": "Your symptoms sound mild. Rest, drink fluids and keep an eye on how you feel.",
            "possible_causes": ["Common cold"],
        }
        self.delay = delay
        self.error = error
        self.calls = []

    async def generate(self, context):
        self.calls.append(context)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.payload


class FlakyStore(InMemorySessionStore):
    """Fails the first `failures` writes as if another turn got there first."""

    def __init__(self, failures):
        super().__init__()
        self.failures = failures

    def put(self, state):
        if self.failures:
            self.failures -= 1
            raise StaleSessionError(f"session {state.session_id} changed")
        return super().put(state)
