"""Shared test fixtures."""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from timekeeper.broadcast import Broadcaster
from timekeeper.storage.db import make_sessionmaker
from timekeeper.storage.models import Base, FocusSession, Task

# Mid-afternoon UTC so that +/- a few hours stays on the same calendar day
NOW = datetime(2026, 3, 10, 15, 30, 0, tzinfo=timezone.utc)


@pytest.fixture
async def engine():
    """In-memory SQLite database with the schema created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return make_sessionmaker(engine)


@pytest.fixture
async def db(sessionmaker):
    async with sessionmaker() as session:
        yield session


@pytest.fixture
def broadcaster():
    """Broadcaster double that records notify() calls."""
    mock = MagicMock(spec=Broadcaster)
    mock.notify = AsyncMock(return_value=0)
    return mock


def make_subscriber(fail: bool = False):
    """Create a mock WebSocket subscriber."""
    ws = MagicMock()
    ws.accept = AsyncMock()
    ws.send_json = AsyncMock(side_effect=RuntimeError("socket closed") if fail else None)
    return ws


def make_task(**overrides) -> Task:
    """Create an unsaved Task for pure-logic tests."""
    defaults = {
        "id": uuid.uuid4(),
        "owner_id": "alice",
        "title": "Test Task",
        "description": None,
        "importance": 50,
        "completed": False,
        "due_date": NOW + timedelta(hours=24),
        "created_at": NOW,
        "updated_at": NOW,
    }
    defaults.update(overrides)
    return Task(**defaults)


def make_focus_session(end_time: datetime, duration: int = 1500, **overrides) -> FocusSession:
    """Create an unsaved FocusSession that ended (or ends) at ``end_time``."""
    defaults = {
        "id": uuid.uuid4(),
        "owner_id": "alice",
        "duration": duration,
        "start_time": end_time - timedelta(seconds=duration),
        "end_time": end_time,
        "status": "open",
    }
    defaults.update(overrides)
    return FocusSession(**defaults)
