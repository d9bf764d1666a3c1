"""
Project cascade delete.

Deleting a project removes its tasks, its notes and the project document in
one atomic batch, then deletes the notes' blobs as best-effort cleanup. Blob
failures never roll the batch back; they are reported instead.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from gradient.media import MediaPipeline
from gradient.schema import Note, Project, Task
from gradient.storage.base import BaseStore

logger = logging.getLogger(__name__)


def collect_blob_urls(document: Mapping[str, Any]) -> list[str]:
    """
    Every blob URL referenced by a raw note document.

    Works on the stored form so that a note which no longer decodes still
    has its blobs cleaned up.
    """
    urls: list[str] = []
    attachments = document.get("attachments")
    if not isinstance(attachments, list):
        return urls
    for attachment in attachments:
        if not isinstance(attachment, Mapping):
            continue
        for key in ("fileURL", "thumbnailURL"):
            url = attachment.get(key)
            if isinstance(url, str) and url:
                urls.append(url)
    return urls


@dataclass
class CascadePlan:
    """Everything a project delete will remove."""

    project_id: str
    task_ids: list[str] = field(default_factory=list)
    note_ids: list[str] = field(default_factory=list)
    blob_urls: list[str] = field(default_factory=list)
    reminder_task_ids: list[str] = field(default_factory=list)

    @property
    def document_count(self) -> int:
        return len(self.task_ids) + len(self.note_ids) + 1


@dataclass
class CascadeReport:
    """Outcome of a committed project delete."""

    project_id: str
    deleted_tasks: list[str] = field(default_factory=list)
    deleted_notes: list[str] = field(default_factory=list)
    blob_urls: list[str] = field(default_factory=list)
    failed_blob_urls: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.failed_blob_urls


class ProjectCascade:
    """Plans and runs the delete of a project with all of its children."""

    def __init__(self, store: BaseStore, media: MediaPipeline):
        self.store = store
        self.media = media

    async def plan(self, project_id: str) -> CascadePlan:
        """Query the children of a project. Nothing is written."""
        scope = {"projectId": project_id}
        tasks = await self.store.query(Task.collection, scope)
        notes = await self.store.query(Note.collection, scope)

        plan = CascadePlan(project_id=project_id)
        for task in tasks:
            plan.task_ids.append(task["id"])
            if task.get("notifyUser") is True:
                plan.reminder_task_ids.append(task["id"])
        for note in notes:
            plan.note_ids.append(note["id"])
            plan.blob_urls.extend(collect_blob_urls(note))
        return plan

    async def execute(self, plan: CascadePlan) -> CascadeReport:
        """
        Commit the planned deletes as one batch, then clean up blobs.

        Raises StoreError if the batch fails; nothing is deleted in that case.
        """
        batch = self.store.batch()
        for task_id in plan.task_ids:
            batch.delete(Task.collection, task_id)
        for note_id in plan.note_ids:
            batch.delete(Note.collection, note_id)
        batch.delete(Project.collection, plan.project_id)
        await batch.commit()

        logger.info(
            "Deleted project %s with %d task(s) and %d note(s)",
            plan.project_id,
            len(plan.task_ids),
            len(plan.note_ids),
        )

        failed = await self.media.delete_blobs(plan.blob_urls)
        if failed:
            logger.warning("Project %s left %d orphaned blob(s)", plan.project_id, len(failed))

        return CascadeReport(
            project_id=plan.project_id,
            deleted_tasks=list(plan.task_ids),
            deleted_notes=list(plan.note_ids),
            blob_urls=list(plan.blob_urls),
            failed_blob_urls=failed,
        )

    async def run(self, project_id: str) -> CascadeReport:
        return await self.execute(await self.plan(project_id))
