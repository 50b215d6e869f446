"""
Pytest configuration and fixtures for Message Tracker tests.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Tuple
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from message_tracker.domain.kv_entry import Base
from message_tracker.infrastructure.memory_kv_store import InMemoryKeyValueStore
from message_tracker.infrastructure.sql_kv_store import SqlKeyValueStore
from message_tracker.usecases.dedup_tracker import DedupTracker


# Use a separate in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeClock:
    """Controllable clock returning aware UTC datetimes."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 5, 1, 8, 30, 0, 123000, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    def timestamp(self) -> float:
        """Epoch seconds, for stores that use a float clock."""
        return self.now.timestamp()

    def naive(self) -> datetime:
        """Naive UTC, for the SQL store."""
        return self.now.replace(tzinfo=None)


class RecordingEventSink:
    """EventSink that keeps emitted events for assertions."""

    def __init__(self):
        self.events: List[Tuple[Any, Optional[str], Optional[BaseException], dict]] = []

    def emit(self, event, msg_id=None, error=None, **fields) -> None:
        self.events.append((event, msg_id, error, fields))

    def names(self) -> List[str]:
        return [event.value for event, *_ in self.events]


def failing_store(error: Exception = None) -> AsyncMock:
    """Store mock whose every call raises."""
    error = error or ConnectionError("store unavailable")
    store = AsyncMock()
    store.get.side_effect = error
    store.put.side_effect = error
    store.put_if_absent.side_effect = error
    store.delete.side_effect = error
    store.purge_expired.side_effect = error
    return store


def seed_record(store: InMemoryKeyValueStore, key: str, **fields) -> None:
    """Write a raw record into the in-memory store, bypassing the tracker."""
    store._data[key] = (json.dumps(fields), store._clock() + 86400)


@pytest_asyncio.fixture
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def test_session_factory(test_engine) -> async_sessionmaker:
    """Create a session factory bound to the test engine."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    """Fake clock shared by the tracker and the store."""
    return FakeClock()


@pytest.fixture
def events() -> RecordingEventSink:
    """Recording event sink."""
    return RecordingEventSink()


@pytest.fixture
def memory_store(clock) -> InMemoryKeyValueStore:
    """In-memory store driven by the fake clock."""
    return InMemoryKeyValueStore(clock=clock.timestamp)


@pytest_asyncio.fixture
async def sql_store(test_session_factory, clock) -> SqlKeyValueStore:
    """SQL store on the in-memory SQLite database."""
    return SqlKeyValueStore(test_session_factory, clock=clock.naive)


@pytest.fixture
def tracker(memory_store, events, clock) -> DedupTracker:
    """Tracker over the in-memory store with default configuration."""
    return DedupTracker(memory_store, events=events, clock=clock)
