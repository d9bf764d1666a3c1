"""Gradient entity schema definitions."""

from gradient.schema.base import Document, Entity, decode_documents, new_id, utcnow
from gradient.schema.note import MAX_ATTACHMENTS, Attachment, AttachmentType, Location, Note
from gradient.schema.project import Project, ProjectStatus
from gradient.schema.task import Task, TaskStatus

__all__ = [
    "Entity",
    "Document",
    "decode_documents",
    "new_id",
    "utcnow",
    "Project",
    "ProjectStatus",
    "Task",
    "TaskStatus",
    "Note",
    "Attachment",
    "AttachmentType",
    "Location",
    "MAX_ATTACHMENTS",
]
