"""
Pytest configuration and fixtures

Nothing here touches a real Redis: persistence uses MemoryKeyValueStore and
the team channel runs over an in-memory broker that keeps the same retained
and fan-out semantics as the Redis transport.
"""
import pytest
import sys
import os
from datetime import datetime

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.store import MemoryKeyValueStore
from services.session_repository import SessionRepository
from services.sync_engine import ProgressSyncEngine
from tests.sync_fakes import FakeTransport, FixedClock, InMemoryBroker


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 3, 1, 8, 30))


@pytest.fixture
def broker():
    return InMemoryBroker()


@pytest.fixture
def store():
    return MemoryKeyValueStore()


@pytest.fixture
def make_engine(broker, clock):
    """Factory: an engine over a given store, wired to the shared broker."""
    engines = []

    def _make(store=None, clock_=None):
        repository = SessionRepository(store if store is not None else MemoryKeyValueStore(), prefix="slimfit")
        engine = ProgressSyncEngine(
            repository,
            transport_factory=lambda: FakeTransport(broker),
            clock=clock_ or clock,
            broker_url="memory://",
        )
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        engine._close_channel()


@pytest.fixture
def engine(make_engine, store):
    return make_engine(store)


@pytest.fixture
def onboarded(engine):
    """Engine with a 70 -> 60 kg, 10 week profile started on the clock's day."""
    engine.onboard(
        name="Mia",
        gender="female",
        age=30,
        height=165,
        current_weight=70.0,
        target_weight=60.0,
        plan_weeks=10,
    )
    return engine
