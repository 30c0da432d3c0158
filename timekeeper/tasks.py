"""Owner-scoped task operations. Subscribers are notified after each committed write."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.broadcast import Broadcaster
from timekeeper.config import get_settings
from timekeeper.errors import NotFound, ValidationError
from timekeeper.storage import store
from timekeeper.storage.models import Task

logger = logging.getLogger(__name__)

MIN_IMPORTANCE = 1
MAX_IMPORTANCE = 100
TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500

UPDATABLE_FIELDS = ("completed", "title", "description", "importance")


def clamp_importance(value: int) -> int:
    return min(max(value, MIN_IMPORTANCE), MAX_IMPORTANCE)


def _clean_title(title: Any) -> str:
    if not isinstance(title, str):
        raise ValidationError("Title is required")
    title = title.strip()
    if not TITLE_MIN_LENGTH <= len(title) <= TITLE_MAX_LENGTH:
        raise ValidationError(
            f"Title must be between {TITLE_MIN_LENGTH} and {TITLE_MAX_LENGTH} characters"
        )
    return title


def _clean_description(description: Any) -> Optional[str]:
    if description is None:
        return None
    if not isinstance(description, str):
        raise ValidationError("Description must be text")
    description = description.strip()
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(
            f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters"
        )
    return description or None


def _clean_importance(importance: Any) -> int:
    # bool is an int subclass; "true" is not an importance
    if isinstance(importance, bool) or not isinstance(importance, int):
        raise ValidationError("Importance must be an integer")
    return clamp_importance(importance)


def _parse_task_id(task_id: Union[str, UUID]) -> UUID:
    if isinstance(task_id, UUID):
        return task_id
    try:
        return UUID(str(task_id))
    except ValueError:
        # Malformed ids can't belong to anyone
        raise NotFound("Task not found")


async def list_tasks(session: AsyncSession, owner_id: str) -> list[Task]:
    return await store.list_tasks(session, owner_id)


async def create_task(
    session: AsyncSession,
    broadcaster: Broadcaster,
    owner_id: str,
    title: Any,
    description: Any = None,
    importance: Any = None,
    due_date: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Task:
    """Validate, persist, then notify subscribers once."""
    now = now or datetime.now(timezone.utc)
    settings = get_settings().tasks
    if due_date is not None and due_date.tzinfo is None:
        due_date = due_date.replace(tzinfo=timezone.utc)

    task = Task(
        owner_id=owner_id,
        title=_clean_title(title),
        description=_clean_description(description),
        importance=(
            _clean_importance(importance)
            if importance is not None
            else clamp_importance(settings.default_importance)
        ),
        completed=False,
        due_date=due_date or now + timedelta(hours=settings.due_offset_hours),
        created_at=now,
        updated_at=now,
    )
    await store.add_task(session, task)
    logger.info("Task created: %s (owner %s)", task.id, owner_id)

    await broadcaster.notify()
    return task


async def update_task(
    session: AsyncSession,
    broadcaster: Broadcaster,
    owner_id: str,
    task_id: Union[str, UUID],
    changes: dict,
    now: Optional[datetime] = None,
) -> Task:
    """Apply a partial edit to one of the owner's tasks."""
    now = now or datetime.now(timezone.utc)
    changes = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
    if not changes:
        raise ValidationError("No updatable fields supplied")

    # Validate everything before touching the record
    cleaned: dict[str, Any] = {}
    if "completed" in changes:
        if not isinstance(changes["completed"], bool):
            raise ValidationError("Completed must be true or false")
        cleaned["completed"] = changes["completed"]
    if "title" in changes:
        cleaned["title"] = _clean_title(changes["title"])
    if "description" in changes:
        cleaned["description"] = _clean_description(changes["description"])
    if "importance" in changes:
        cleaned["importance"] = _clean_importance(changes["importance"])

    task = await store.get_task(session, owner_id, _parse_task_id(task_id))
    if task is None:
        raise NotFound("Task not found")

    for field, value in cleaned.items():
        setattr(task, field, value)
    task.updated_at = now
    await store.save_task(session, task)
    logger.info("Task updated: %s (%s)", task.id, ", ".join(sorted(cleaned)))

    await broadcaster.notify()
    return task


async def toggle_task(
    session: AsyncSession,
    broadcaster: Broadcaster,
    owner_id: str,
    task_id: Union[str, UUID],
    now: Optional[datetime] = None,
) -> Task:
    """Flip ``completed`` on one of the owner's tasks."""
    task = await store.get_task(session, owner_id, _parse_task_id(task_id))
    if task is None:
        raise NotFound("Task not found")
    return await update_task(
        session, broadcaster, owner_id, task.id, {"completed": not task.completed}, now=now
    )


async def delete_task(
    session: AsyncSession,
    broadcaster: Broadcaster,
    owner_id: str,
    task_id: Union[str, UUID],
) -> None:
    deleted = await store.delete_task(session, owner_id, _parse_task_id(task_id))
    if not deleted:
        raise NotFound("Task not found")
    logger.info("Task deleted: %s (owner %s)", task_id, owner_id)

    await broadcaster.notify()
