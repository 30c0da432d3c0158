"""Focus session lifecycle: start and stop transitions per owner.

An owner is Running while one of their sessions has ``status == "open"`` and
an end time still ahead of the clock, and Idle otherwise. ``start`` creates a
session ending ``duration`` seconds from now; ``stop`` ends the most recent
running session immediately. The stored ``duration`` is never rewritten.
"""

import asyncio
import logging
from collections import Counter
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.broadcast import Broadcaster
from timekeeper.config import Settings, get_settings
from timekeeper.errors import (
    InvalidAction,
    InvalidDuration,
    NoActiveSession,
    SessionAlreadyRunning,
)
from timekeeper.storage import store
from timekeeper.storage.models import SESSION_CLOSED, SESSION_OPEN, FocusSession

logger = logging.getLogger(__name__)

ACTION_START = "start"
ACTION_STOP = "stop"


class SessionManager:
    def __init__(
        self,
        broadcaster: Broadcaster,
        min_duration: int = 300,
        max_duration: int = 14400,
        exclusive: bool = True,
    ):
        self.broadcaster = broadcaster
        self.min_duration = min_duration
        self.max_duration = max_duration
        self.exclusive = exclusive
        # Serializes transitions for one owner within this process. Entries
        # live only while some request holds or waits on them.
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()

    @classmethod
    def from_settings(
        cls, broadcaster: Broadcaster, settings: Optional[Settings] = None
    ) -> "SessionManager":
        settings = settings or get_settings()
        return cls(
            broadcaster,
            min_duration=settings.sessions.min_duration,
            max_duration=settings.sessions.max_duration,
            exclusive=settings.sessions.exclusive,
        )

    @asynccontextmanager
    async def _owner_lock(self, owner_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(owner_id, asyncio.Lock())
        self._lock_users[owner_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[owner_id] -= 1
            if not self._lock_users[owner_id]:
                del self._lock_users[owner_id]
                del self._locks[owner_id]

    def validate_duration(self, duration: Any) -> int:
        if isinstance(duration, bool) or not isinstance(duration, int):
            raise InvalidDuration("Session duration must be a whole number of seconds")
        if not self.min_duration <= duration <= self.max_duration:
            raise InvalidDuration(
                f"Session duration must be between {self.min_duration} "
                f"and {self.max_duration} seconds"
            )
        return duration

    async def handle(
        self,
        session: AsyncSession,
        owner_id: str,
        action: Any,
        duration: Any = None,
        now: Optional[datetime] = None,
    ) -> FocusSession:
        """Dispatch a ``{action, duration}`` request."""
        if action == ACTION_START:
            return await self.start(session, owner_id, duration, now=now)
        if action == ACTION_STOP:
            return await self.stop(session, owner_id, now=now)
        logger.debug("Rejected session action %r for owner %s", action, owner_id)
        raise InvalidAction(f"Unknown session action: {action!r}")

    async def start(
        self,
        session: AsyncSession,
        owner_id: str,
        duration: Any,
        now: Optional[datetime] = None,
    ) -> FocusSession:
        duration = self.validate_duration(duration)

        async with self._owner_lock(owner_id):
            now = now or datetime.now(timezone.utc)
            if self.exclusive and await store.has_open_session(session, owner_id, now):
                raise SessionAlreadyRunning()

            focus_session = FocusSession(
                owner_id=owner_id,
                duration=duration,
                start_time=now,
                end_time=now + timedelta(seconds=duration),
                status=SESSION_OPEN,
            )
            await store.add_session(session, focus_session)

        logger.info(
            "Focus session started: %s (%ds, owner %s)", focus_session.id, duration, owner_id
        )
        await self.broadcaster.notify()
        return focus_session

    async def stop(
        self,
        session: AsyncSession,
        owner_id: str,
        now: Optional[datetime] = None,
    ) -> FocusSession:
        async with self._owner_lock(owner_id):
            now = now or datetime.now(timezone.utc)
            focus_session = await store.latest_open_session(session, owner_id, now)
            if focus_session is None:
                raise NoActiveSession()

            # end_time must stay strictly after start_time
            focus_session.end_time = max(
                now, focus_session.start_time + timedelta(microseconds=1)
            )
            focus_session.status = SESSION_CLOSED
            await store.save_session(session, focus_session)

        logger.info("Focus session stopped early: %s (owner %s)", focus_session.id, owner_id)
        await self.broadcaster.notify()
        return focus_session
