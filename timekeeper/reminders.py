"""Reminder feed: the owner's unfinished tasks, earliest due first."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.storage import store
from timekeeper.storage.models import Task


@dataclass(frozen=True)
class Reminder:
    task: Task
    overdue: bool
    due_in_seconds: int  # negative once overdue


def build_reminders(tasks: Iterable[Task], now: datetime) -> list[Reminder]:
    reminders = []
    for task in tasks:
        if task.completed:
            continue
        due_in = int((task.due_date - now).total_seconds())
        reminders.append(Reminder(task=task, overdue=due_in <= 0, due_in_seconds=due_in))
    reminders.sort(key=lambda r: r.task.due_date)
    return reminders


async def pending_reminders(
    session: AsyncSession,
    owner_id: str,
    now: Optional[datetime] = None,
) -> list[Reminder]:
    now = now or datetime.now(timezone.utc)
    tasks = await store.list_pending_tasks(session, owner_id)
    return build_reminders(tasks, now)
