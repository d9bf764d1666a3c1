"""Tests for local task reminders."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from gradient.notifications import LocalReminderService

NOW = datetime(2030, 1, 1, 9, 0, tzinfo=timezone.utc)


class TestLocalReminderService:
    """Tests for the in-process reminder scheduler."""

    @pytest.mark.asyncio
    async def test_schedule_replaces_same_id(self):
        service = LocalReminderService()
        await service.schedule("t1", "Task Reminder", "Task: Sand", NOW)
        await service.schedule("t1", "Task Reminder", "Task: Sand", NOW + timedelta(hours=1))

        assert len(service.pending) == 1
        assert service.pending["t1"].fire_date == NOW + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_cancel(self):
        service = LocalReminderService()
        await service.schedule("t1", "Task Reminder", "Task: Sand", NOW)

        await service.cancel("t1")
        await service.cancel("unknown")

        assert service.pending == {}

    @pytest.mark.asyncio
    async def test_fire_due(self):
        """Test that only due reminders fire, once each."""
        service = LocalReminderService()
        delivered = []
        service.on_fire = delivered.append
        await service.schedule("due", "Task Reminder", "Task: Sand", NOW - timedelta(minutes=1))
        await service.schedule("later", "Task Reminder", "Task: Oil", NOW + timedelta(days=1))

        fired = service.fire_due(NOW)

        assert [r.id for r in fired] == ["due"]
        assert [r.body for r in delivered] == ["Task: Sand"]
        assert fired[0].fired_at == NOW
        assert list(service.pending) == ["later"]
        assert service.fire_due(NOW) == []

    @pytest.mark.asyncio
    async def test_callback_failure_is_contained(self):
        service = LocalReminderService()

        def broken(reminder):
            raise RuntimeError("display failed")

        service.on_fire = broken
        await service.schedule("t1", "Task Reminder", "Task: Sand", NOW)

        assert len(service.fire_due(NOW)) == 1
        assert len(service.fired) == 1

    @pytest.mark.asyncio
    async def test_background_loop(self):
        service = LocalReminderService(check_interval_seconds=0.01)
        await service.schedule("t1", "Task Reminder", "Task: Sand", datetime.now(timezone.utc) - timedelta(seconds=1))

        await service.start()
        try:
            for _ in range(100):
                if service.fired:
                    break
                await asyncio.sleep(0.01)
        finally:
            await service.stop()

        assert [r.id for r in service.fired] == ["t1"]
        assert service.pending == {}
