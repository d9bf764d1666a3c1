"""
Sync manager: the single write path for projects, tasks and notes.

Writes go straight to the remote store. Live collections observe the result
through their watches; nothing here touches a materialized list.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from gradient.exceptions import ParseError, PartialCascadeError, StoreError, ValidationError
from gradient.media import MediaPipeline, PendingMedia
from gradient.notifications import ReminderScheduler
from gradient.schema import MAX_ATTACHMENTS, Attachment, Note, Project, Task, utcnow
from gradient.storage.base import ArrayRemove, ArrayUnion, BaseStore
from gradient.sync.cascade import CascadeReport, ProjectCascade, collect_blob_urls
from gradient.sync.live import NoteCollection, ProjectCollection, TaskCollection

logger = logging.getLogger(__name__)

REMINDER_TITLE = "Task Reminder"

# Project fields an update may write; the back-reference arrays are excluded.
PROJECT_EDITABLE = ("name", "description", "status", "workshops", "materialsNeeded", "materialsFound")


def _require_text(value: str, label: str) -> None:
    if not value.strip():
        raise ValidationError(f"{label} must not be empty")


def _fit_media(existing: Sequence[Attachment], media: Sequence[PendingMedia], note_id: str) -> Sequence[PendingMedia]:
    """Media that still fits on a note; the rest is never uploaded."""
    free = max(0, MAX_ATTACHMENTS - len(existing))
    if len(media) > free:
        logger.warning("Note %s has room for %d of %d new attachment(s)", note_id, free, len(media))
    return media[:free]


@dataclass
class OrphanReport:
    """Back-reference drift for one project."""

    project_id: str
    project_exists: bool = True
    # Child documents whose id is missing from the parent array
    unlisted_tasks: list[str] = field(default_factory=list)
    unlisted_notes: list[str] = field(default_factory=list)
    # Ids in the parent array with no child document
    dangling_tasks: list[str] = field(default_factory=list)
    dangling_notes: list[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return self.project_exists and not (
            self.unlisted_tasks or self.unlisted_notes or self.dangling_tasks or self.dangling_notes
        )


class SyncManager:
    """
    Applies user mutations to the remote store and keeps parent
    back-references and task reminders in step with them.
    """

    def __init__(
        self,
        store: BaseStore,
        media: MediaPipeline,
        reminders: ReminderScheduler | None = None,
    ):
        self.store = store
        self.media = media
        self.reminders = reminders
        self.cascade = ProjectCascade(store, media)

    # Live collections
    async def watch_projects(self) -> ProjectCollection:
        return await ProjectCollection(self.store).start()

    async def watch_tasks(self, project_id: str) -> TaskCollection:
        return await TaskCollection(self.store, project_id).start()

    async def watch_notes(self, project_id: str) -> NoteCollection:
        return await NoteCollection(self.store, project_id).start()

    # Projects
    async def create_project(self, project: Project) -> Project:
        _require_text(project.name, "Project name")
        await self.store.put(Project.collection, project.id, project.to_document())
        logger.info("Created project %s", project.id)
        return project

    async def update_project(self, project: Project, **changes: Any) -> Project:
        """Apply ``changes`` to ``project`` and write only its editable fields."""
        for reference in ("tasks", "notes"):
            if reference in changes:
                raise ValidationError(f"Project {reference} are maintained by the sync core")

        updated = project.revise(**changes)
        _require_text(updated.name, "Project name")

        document = updated.to_document()
        fields = {key: document[key] for key in PROJECT_EDITABLE}
        fields["updatedAt"] = document["updatedAt"]
        await self.store.patch(Project.collection, updated.id, fields)
        return updated

    async def delete_project(self, project_id: str) -> CascadeReport:
        """Delete a project with all its tasks, notes and attachment blobs."""
        plan = await self.cascade.plan(project_id)
        report = await self.cascade.execute(plan)
        for task_id in plan.reminder_task_ids:
            await self._cancel_reminder(task_id)
        return report

    # Tasks
    async def create_task(self, task: Task) -> Task:
        _require_text(task.title, "Task title")
        await self.store.put(Task.collection, task.id, task.to_document())
        if task.has_reminder:
            await self._schedule_reminder(task)
        await self._link(task, "tasks")
        return task

    async def update_task(self, task: Task, **changes: Any) -> Task:
        updated = task.revise(**changes)
        _require_text(updated.title, "Task title")

        await self.store.patch(Task.collection, updated.id, updated.to_patch())

        if updated.has_reminder and (
            not task.has_reminder or task.notification_date != updated.notification_date
        ):
            await self._schedule_reminder(updated)
        elif not updated.has_reminder and (
            task.has_reminder or (task.notify_user and not updated.notify_user)
        ):
            await self._cancel_reminder(updated.id)

        await self._touch_parent(updated.project_id)
        return updated

    async def delete_task(self, task: Task) -> None:
        await self.store.delete(Task.collection, task.id)
        if task.notify_user:
            await self._cancel_reminder(task.id)
        await self._unlink(task.id, task.project_id, Task.collection, "tasks")

    # Notes
    async def create_note(self, note: Note, media: Sequence[PendingMedia] = ()) -> Note:
        """
        Upload ``media`` and write the note with the resulting attachments.

        Raises UploadError without writing anything if an upload fails. Media
        beyond the attachment cap is not uploaded.
        """
        media = _fit_media(note.attachments, media, note.id)
        if media:
            attachments = await self.media.upload_all(media)
            note = note.revise(attachments=[*note.attachments, *attachments])

        await self.store.put(Note.collection, note.id, note.to_document())
        await self._link(note, "notes")
        return note

    async def update_note(self, note: Note, media: Sequence[PendingMedia] = (), **changes: Any) -> Note:
        """
        Apply ``changes`` and append newly uploaded ``media``. The merged
        attachment list keeps at most four entries; media that would not fit
        is not uploaded.
        """
        existing = changes.get("attachments", note.attachments)
        media = _fit_media(existing, media, note.id)
        if media:
            uploaded = await self.media.upload_all(media)
            changes["attachments"] = [*existing, *uploaded]

        updated = note.revise(**changes)
        await self.store.patch(Note.collection, updated.id, updated.to_patch())
        await self._touch_parent(updated.project_id)
        return updated

    async def delete_note(self, note_id: str, project_id: str) -> None:
        """Delete a note, its attachment blobs and its parent back-reference."""
        document = await self.store.get(Note.collection, note_id)
        blob_urls = collect_blob_urls(document) if document else []

        await self.store.delete(Note.collection, note_id)
        failed = await self.media.delete_blobs(blob_urls)
        if failed:
            logger.warning("Note %s left %d orphaned blob(s)", note_id, len(failed))

        await self._unlink(note_id, project_id, Note.collection, "notes")

    # Consistency
    async def find_orphans(self, project_id: str) -> OrphanReport:
        """Compare a project's back-reference arrays with its child documents."""
        report = OrphanReport(project_id=project_id)
        scope = {"projectId": project_id}
        task_ids = {doc["id"] for doc in await self.store.query(Task.collection, scope)}
        note_ids = {doc["id"] for doc in await self.store.query(Note.collection, scope)}

        document = await self.store.get(Project.collection, project_id)
        if document is None:
            report.project_exists = False
            report.unlisted_tasks = sorted(task_ids)
            report.unlisted_notes = sorted(note_ids)
            return report

        try:
            project = Project.from_document(document)
        except ParseError as e:
            raise StoreError(f"Project {project_id} is unreadable: {e}", Project.collection, project_id) from e

        report.unlisted_tasks = sorted(task_ids - set(project.tasks))
        report.unlisted_notes = sorted(note_ids - set(project.notes))
        report.dangling_tasks = [i for i in project.tasks if i not in task_ids]
        report.dangling_notes = [i for i in project.notes if i not in note_ids]
        return report

    # Back-references
    async def _link(self, child: Task | Note, array: str) -> None:
        fields = {array: ArrayUnion([child.id]), "updatedAt": utcnow().timestamp()}
        try:
            await self.store.patch(Project.collection, child.project_id, fields)
        except StoreError as e:
            raise PartialCascadeError(
                f"{type(child).__name__} {child.id} written but project {child.project_id} not updated: {e}",
                step="link",
                child_collection=child.collection,
                child_id=child.id,
                parent_id=child.project_id,
                cause=e,
            ) from e

    async def _unlink(self, child_id: str, project_id: str, collection: str, array: str) -> None:
        fields = {array: ArrayRemove([child_id]), "updatedAt": utcnow().timestamp()}
        try:
            await self.store.patch(Project.collection, project_id, fields)
        except StoreError as e:
            raise PartialCascadeError(
                f"{collection} {child_id} deleted but project {project_id} not updated: {e}",
                step="unlink",
                child_collection=collection,
                child_id=child_id,
                parent_id=project_id,
                cause=e,
            ) from e

    async def _touch_parent(self, project_id: str) -> None:
        try:
            await self.store.patch(Project.collection, project_id, {"updatedAt": utcnow().timestamp()})
        except StoreError as e:
            logger.warning("Could not bump updatedAt of project %s: %s", project_id, e)

    # Reminders
    async def _schedule_reminder(self, task: Task) -> None:
        if self.reminders is None or task.notification_date is None:
            return
        try:
            await self.reminders.schedule(task.id, REMINDER_TITLE, f"Task: {task.title}", task.notification_date)
        except Exception as e:
            logger.warning("Failed to schedule reminder for task %s: %s", task.id, e)

    async def _cancel_reminder(self, task_id: str) -> None:
        if self.reminders is None:
            return
        try:
            await self.reminders.cancel(task_id)
        except Exception as e:
            logger.warning("Failed to cancel reminder for task %s: %s", task_id, e)
