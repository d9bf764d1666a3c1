"""
Local task reminders.

The sync core talks to a ReminderScheduler; LocalReminderService is an
in-process implementation that fires due reminders from a background loop.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


@dataclass
class Reminder:
    """A scheduled local notification."""

    id: str
    title: str
    body: str
    fire_date: datetime
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    fired_at: datetime | None = None


class ReminderScheduler(ABC):
    """Collaborator interface for local notifications."""

    @abstractmethod
    async def schedule(self, reminder_id: str, title: str, body: str, fire_date: datetime) -> None:
        """Schedule (or replace) the reminder with this id."""

    @abstractmethod
    async def cancel(self, reminder_id: str) -> None:
        """Cancel a pending reminder. Unknown ids are ignored."""


class LocalReminderService(ReminderScheduler):
    """
    In-process reminder scheduler.

    Features:
    - One pending reminder per id (scheduling again replaces it)
    - Background loop delivering due reminders to ``on_fire``
    """

    def __init__(self, check_interval_seconds: float = 30.0):
        self.check_interval_seconds = check_interval_seconds
        self.pending: dict[str, Reminder] = {}
        self.fired: list[Reminder] = []
        self.on_fire: Callable[[Reminder], None] | None = None
        self._scheduler_task: asyncio.Task[None] | None = None

    async def schedule(self, reminder_id: str, title: str, body: str, fire_date: datetime) -> None:
        self.pending[reminder_id] = Reminder(id=reminder_id, title=title, body=body, fire_date=fire_date)
        logger.info("Reminder %s scheduled for %s", reminder_id, fire_date.isoformat())

    async def cancel(self, reminder_id: str) -> None:
        if self.pending.pop(reminder_id, None) is not None:
            logger.info("Reminder %s cancelled", reminder_id)

    def fire_due(self, now: datetime | None = None) -> list[Reminder]:
        """Deliver every reminder whose fire date has passed."""
        now = now or datetime.now(timezone.utc)
        due = [r for r in self.pending.values() if r.fire_date <= now]

        for reminder in due:
            del self.pending[reminder.id]
            reminder.fired_at = now
            self.fired.append(reminder)
            if self.on_fire:
                try:
                    self.on_fire(reminder)
                except Exception:
                    logger.exception("Reminder callback failed for %s", reminder.id)
        return due

    async def start(self) -> None:
        """Start the background delivery loop."""
        if self._scheduler_task:
            return
        self._scheduler_task = asyncio.create_task(self._scheduler_loop())

    async def stop(self) -> None:
        """Stop the background delivery loop."""
        if self._scheduler_task:
            self._scheduler_task.cancel()
            try:
                await self._scheduler_task
            except asyncio.CancelledError:
                pass
            self._scheduler_task = None

    async def _scheduler_loop(self) -> None:
        while True:
            self.fire_due()
            await asyncio.sleep(self.check_interval_seconds)
