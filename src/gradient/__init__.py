"""
Gradient

Client-side sync core for projects, tasks and notes kept in a remote
document store.

Quick Start:
    from gradient import MemoryStore, MediaPipeline, MemoryBlobStore, SyncManager, Project

    manager = SyncManager(MemoryStore(), MediaPipeline(MemoryBlobStore()))
    projects = await manager.watch_projects()

    await manager.create_project(Project(name="Bench"))
    await projects.wait_for(lambda items: len(items) == 1)
"""

__version__ = "0.1.0"

from gradient.exceptions import (
    DocumentNotFound,
    GradientError,
    ParseError,
    PartialCascadeError,
    StoreError,
    UploadError,
    ValidationError,
)
from gradient.media import MediaPipeline, PendingMedia, Thumbnailer
from gradient.notifications import LocalReminderService, ReminderScheduler
from gradient.schema import (
    Attachment,
    AttachmentType,
    Location,
    Note,
    Project,
    ProjectStatus,
    Task,
    TaskStatus,
)
from gradient.storage import (
    BaseStore,
    LocalBlobStore,
    MemoryBlobStore,
    MemoryStore,
    PocketBaseStore,
    SQLiteStore,
)
from gradient.sync import (
    CascadeReport,
    CollectionState,
    NoteCollection,
    OrphanReport,
    ProjectCollection,
    SearchScope,
    SyncManager,
    TaskCollection,
)

__all__ = [
    "__version__",
    # Errors
    "GradientError",
    "ValidationError",
    "ParseError",
    "StoreError",
    "DocumentNotFound",
    "PartialCascadeError",
    "UploadError",
    # Schema
    "Project",
    "ProjectStatus",
    "Task",
    "TaskStatus",
    "Note",
    "Attachment",
    "AttachmentType",
    "Location",
    # Storage
    "BaseStore",
    "MemoryStore",
    "SQLiteStore",
    "PocketBaseStore",
    "MemoryBlobStore",
    "LocalBlobStore",
    # Media
    "MediaPipeline",
    "PendingMedia",
    "Thumbnailer",
    # Reminders
    "ReminderScheduler",
    "LocalReminderService",
    # Sync
    "SyncManager",
    "ProjectCollection",
    "TaskCollection",
    "NoteCollection",
    "CollectionState",
    "SearchScope",
    "CascadeReport",
    "OrphanReport",
]
