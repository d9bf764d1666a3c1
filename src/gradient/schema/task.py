"""
Task entity.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar

from pydantic import Field, StrictBool, StrictStr, model_validator

from gradient.schema.base import Document, Timestamp


class TaskStatus(str, Enum):
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


class Task(Document):
    """
    A unit of work belonging to exactly one project.

    ``notification_date`` only has meaning while ``notify_user`` is set; it is
    dropped whenever reminders are off.
    """

    collection: ClassVar[str] = "tasks"
    required_keys: ClassVar[tuple[str, ...]] = (
        "id",
        "title",
        "status",
        "notifyUser",
        "projectId",
        "createdAt",
        "updatedAt",
    )
    immutable_fields: ClassVar[frozenset[str]] = frozenset({"id", "created_at", "project_id"})

    title: StrictStr
    status: TaskStatus = TaskStatus.NOT_STARTED
    due_date: Timestamp | None = Field(default=None, alias="dueDate")
    notify_user: StrictBool = Field(default=False, alias="notifyUser")
    notification_date: Timestamp | None = Field(default=None, alias="notificationDate")
    project_id: StrictStr = Field(alias="projectId", min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _drop_reminder_without_notify(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        notify = data.get("notify_user", data.get("notifyUser", False))
        if notify is not True:
            data = {k: v for k, v in data.items() if k not in ("notification_date", "notificationDate")}
        return data

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    @property
    def has_reminder(self) -> bool:
        """True when a reminder should be scheduled for this task."""
        return self.notify_user and self.notification_date is not None
