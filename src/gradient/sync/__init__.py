"""Live collections and the mutation path of the Gradient sync core."""

from gradient.sync.cascade import CascadePlan, CascadeReport, ProjectCascade
from gradient.sync.live import (
    CollectionState,
    LiveCollection,
    NoteCollection,
    ProjectCollection,
    SearchScope,
    TaskCollection,
    project_matches,
)
from gradient.sync.manager import OrphanReport, SyncManager

__all__ = [
    "CollectionState",
    "LiveCollection",
    "ProjectCollection",
    "TaskCollection",
    "NoteCollection",
    "SearchScope",
    "project_matches",
    "ProjectCascade",
    "CascadePlan",
    "CascadeReport",
    "SyncManager",
    "OrphanReport",
]
