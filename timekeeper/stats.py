"""Per-owner statistics derived from stored tasks and focus sessions.

Nothing here is cached: every call re-reads the owner's records and derives
the numbers from scratch. Calendar days are UTC dates.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.storage import store
from timekeeper.storage.models import FocusSession

logger = logging.getLogger(__name__)

FOCUS_REQUESTED = "requested"
FOCUS_ELAPSED = "elapsed"


@dataclass(frozen=True)
class Stats:
    tasks_completed: int
    total_focus: int  # seconds
    current_streak: int  # days

    def to_dict(self) -> dict:
        return asdict(self)


def session_days(end_times: Iterable[datetime]) -> set[date]:
    """Distinct UTC calendar days on which sessions ended."""
    return {t.astimezone(timezone.utc).date() for t in end_times}


def current_streak(end_times: Iterable[datetime], today: date) -> int:
    """Count consecutive days with a session, walking back from ``today``.

    A day without any session ending on it (including today) ends the run.
    """
    days = session_days(end_times)
    streak = 0
    day = today
    while day in days:
        streak += 1
        day -= timedelta(days=1)
    return streak


def total_focus(
    sessions: Iterable[FocusSession],
    measure: str = FOCUS_REQUESTED,
    now: Optional[datetime] = None,
) -> int:
    """Sum of focus seconds.

    ``requested`` adds up the stored durations, early stops included.
    ``elapsed`` counts only time actually spent, capped at the requested
    duration, and ignores the unfinished part of a running session.
    """
    if measure == FOCUS_REQUESTED:
        return sum(s.duration for s in sessions)

    now = now or datetime.now(timezone.utc)
    total = 0
    for s in sessions:
        end = min(s.end_time, now)
        spent = int((end - s.start_time).total_seconds())
        total += max(0, min(s.duration, spent))
    return total


async def compute_stats(
    session: AsyncSession,
    owner_id: str,
    now: Optional[datetime] = None,
    focus_measure: str = FOCUS_REQUESTED,
) -> Stats:
    """Derive the owner's statistics. Both reads must succeed."""
    now = now or datetime.now(timezone.utc)

    tasks_completed = await store.count_completed_tasks(session, owner_id)
    sessions = await store.list_sessions(session, owner_id)

    stats = Stats(
        tasks_completed=tasks_completed,
        total_focus=total_focus(sessions, focus_measure, now),
        current_streak=current_streak(
            (s.end_time for s in sessions), now.astimezone(timezone.utc).date()
        ),
    )
    logger.debug("Stats for %s: %s", owner_id, stats)
    return stats
