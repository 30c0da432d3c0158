"""Tests for the pending-task reminder feed."""

from datetime import timedelta

import pytest

from tests.conftest import NOW, make_task
from timekeeper.reminders import build_reminders, pending_reminders
from timekeeper.storage import store


class TestBuildReminders:
    def test_skips_completed(self):
        reminders = build_reminders([make_task(completed=True)], NOW)
        assert reminders == []

    def test_overdue_flag_and_countdown(self):
        overdue = make_task(title="late", due_date=NOW - timedelta(hours=2))
        upcoming = make_task(title="soon", due_date=NOW + timedelta(minutes=30))

        reminders = build_reminders([upcoming, overdue], NOW)

        assert [r.task.title for r in reminders] == ["late", "soon"]
        assert reminders[0].overdue is True
        assert reminders[0].due_in_seconds == -7200
        assert reminders[1].overdue is False
        assert reminders[1].due_in_seconds == 1800

    def test_due_exactly_now_is_overdue(self):
        reminders = build_reminders([make_task(due_date=NOW)], NOW)
        assert reminders[0].overdue is True


class TestPendingReminders:
    @pytest.mark.asyncio
    async def test_reads_owner_pending_tasks(self, db):
        await store.add_task(db, make_task(title="open", due_date=NOW + timedelta(hours=1)))
        await store.add_task(db, make_task(title="done", completed=True))
        await store.add_task(db, make_task(title="bob's", owner_id="bob"))

        reminders = await pending_reminders(db, "alice", now=NOW)

        assert [r.task.title for r in reminders] == ["open"]
        assert reminders[0].due_in_seconds == 3600
