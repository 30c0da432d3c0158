"""Owner-scoped access to the tasks and focus_sessions collections.

Every function takes the caller's ``AsyncSession`` first and the owner id
second. A record belonging to another owner is indistinguishable from a
missing one. Writes commit before returning; any SQLAlchemy failure is
rolled back and re-raised as ``StorageError``.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.errors import StorageError
from timekeeper.storage.models import SESSION_OPEN, FocusSession, Task

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _storage_op(session: AsyncSession, action: str) -> AsyncIterator[None]:
    try:
        yield
    except SQLAlchemyError as e:
        logger.error("Storage failure while trying to %s: %s", action, e, exc_info=True)
        await session.rollback()
        raise StorageError(f"Failed to {action}") from e


# --- Tasks ---

async def list_tasks(session: AsyncSession, owner_id: str) -> list[Task]:
    async with _storage_op(session, "fetch tasks"):
        result = await session.execute(
            select(Task).where(Task.owner_id == owner_id).order_by(Task.created_at.desc())
        )
        return list(result.scalars().all())


async def list_pending_tasks(session: AsyncSession, owner_id: str) -> list[Task]:
    """Incomplete tasks, earliest due first."""
    async with _storage_op(session, "fetch pending tasks"):
        result = await session.execute(
            select(Task)
            .where(Task.owner_id == owner_id, Task.completed.is_(False))
            .order_by(Task.due_date.asc())
        )
        return list(result.scalars().all())


async def get_task(session: AsyncSession, owner_id: str, task_id: UUID) -> Optional[Task]:
    async with _storage_op(session, "fetch task"):
        result = await session.execute(
            select(Task).where(Task.id == task_id, Task.owner_id == owner_id)
        )
        return result.scalar_one_or_none()


async def add_task(session: AsyncSession, task: Task) -> Task:
    async with _storage_op(session, "create task"):
        session.add(task)
        await session.commit()
    logger.debug("Stored task %s for owner %s", task.id, task.owner_id)
    return task


async def save_task(session: AsyncSession, task: Task) -> Task:
    """Commit pending changes on an already loaded task."""
    async with _storage_op(session, "update task"):
        session.add(task)
        await session.commit()
    return task


async def delete_task(session: AsyncSession, owner_id: str, task_id: UUID) -> bool:
    """Delete one task. Returns False when nothing matched."""
    async with _storage_op(session, "delete task"):
        result = await session.execute(
            delete(Task).where(Task.id == task_id, Task.owner_id == owner_id)
        )
        await session.commit()
        return result.rowcount > 0


async def count_completed_tasks(session: AsyncSession, owner_id: str) -> int:
    async with _storage_op(session, "count completed tasks"):
        result = await session.execute(
            select(func.count())
            .select_from(Task)
            .where(Task.owner_id == owner_id, Task.completed.is_(True))
        )
        return result.scalar_one()


# --- Focus sessions ---

async def list_sessions(session: AsyncSession, owner_id: str) -> list[FocusSession]:
    async with _storage_op(session, "fetch focus sessions"):
        result = await session.execute(
            select(FocusSession)
            .where(FocusSession.owner_id == owner_id)
            .order_by(FocusSession.start_time.desc())
        )
        return list(result.scalars().all())


async def latest_open_session(
    session: AsyncSession,
    owner_id: str,
    now: datetime,
) -> Optional[FocusSession]:
    """Most recently started session that is still open at ``now``."""
    async with _storage_op(session, "fetch open focus session"):
        result = await session.execute(
            select(FocusSession)
            .where(
                FocusSession.owner_id == owner_id,
                FocusSession.status == SESSION_OPEN,
                FocusSession.end_time > now,
            )
            .order_by(FocusSession.start_time.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()


async def has_open_session(session: AsyncSession, owner_id: str, now: datetime) -> bool:
    return await latest_open_session(session, owner_id, now) is not None


async def add_session(session: AsyncSession, focus_session: FocusSession) -> FocusSession:
    async with _storage_op(session, "create focus session"):
        session.add(focus_session)
        await session.commit()
    logger.debug("Stored focus session %s for owner %s", focus_session.id, focus_session.owner_id)
    return focus_session


async def save_session(session: AsyncSession, focus_session: FocusSession) -> FocusSession:
    async with _storage_op(session, "update focus session"):
        session.add(focus_session)
        await session.commit()
    return focus_session
