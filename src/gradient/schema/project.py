"""
Project entity.
"""

from __future__ import annotations

from enum import Enum
from typing import ClassVar

from pydantic import Field, StrictStr, field_validator

from gradient.schema.base import Document


class ProjectStatus(str, Enum):
    """Lifecycle stage of a project."""

    NOT_STARTED = "Not Started"
    PLANNING = "Planning"
    IN_PROGRESS = "In Progress"
    TESTING = "Testing"
    COMPLETED = "Completed"


class Project(Document):
    """
    A project and its denormalized child references.

    ``tasks`` and ``notes`` are back-reference arrays: they mirror the ids of
    the Task and Note documents whose ``projectId`` is this project. They are
    maintained by the sync core through atomic array updates and are never
    edited directly.
    """

    collection: ClassVar[str] = "projects"
    required_keys: ClassVar[tuple[str, ...]] = (
        "id",
        "name",
        "description",
        "status",
        "workshops",
        "materialsNeeded",
        "materialsFound",
        "tasks",
        "notes",
        "createdAt",
        "updatedAt",
    )

    name: StrictStr
    description: StrictStr = ""
    status: ProjectStatus = ProjectStatus.NOT_STARTED

    # Free-text tags
    workshops: list[StrictStr] = Field(default_factory=list)
    materials_needed: list[StrictStr] = Field(default_factory=list, alias="materialsNeeded")
    materials_found: list[StrictStr] = Field(default_factory=list, alias="materialsFound")

    # Back-references
    tasks: list[StrictStr] = Field(default_factory=list)
    notes: list[StrictStr] = Field(default_factory=list)

    @field_validator("workshops", "materials_needed", "materials_found")
    @classmethod
    def _suppress_duplicate_tags(cls, tags: list[str]) -> list[str]:
        return list(dict.fromkeys(tags))

    @property
    def materials(self) -> list[str]:
        """Needed and found materials, in that order."""
        return self.materials_needed + self.materials_found
