"""
Live collections: in-memory lists kept current by a standing store watch.

Each live collection owns its materialized list. Only the snapshot-apply step
writes it; subscribers receive immutable tuples.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from enum import Enum
from typing import Any, Generic, TypeVar

from gradient.exceptions import GradientError, StoreError
from gradient.schema import Document, Note, Project, Task, decode_documents
from gradient.storage.base import BaseStore, Snapshot, Watch

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Document)

Subscriber = Callable[[tuple[Any, ...]], None]
ErrorHandler = Callable[[StoreError], None]


class CollectionState(str, Enum):
    """Lifecycle of a live collection."""

    UNINITIALIZED = "uninitialized"
    SUBSCRIBED = "subscribed"  # Watch attached, no snapshot applied yet
    UPDATED = "updated"  # At least one snapshot applied
    UNSUBSCRIBED = "unsubscribed"  # Terminal


class LiveCollection(Generic[T]):
    """
    A sorted, optionally filtered view of one store query.

    Every snapshot replaces the whole list. Snapshots whose sequence is not
    newer than the last applied one are discarded.
    """

    model: type[T]

    def __init__(self, store: BaseStore, filters: Mapping[str, Any] | None = None):
        self.store = store
        self.filters = dict(filters or {})
        self.state = CollectionState.UNINITIALIZED
        self.error: StoreError | None = None

        self._items: tuple[T, ...] = ()
        self._visible: tuple[T, ...] = ()
        self._last_sequence = 0
        self._subscribers: list[Subscriber] = []
        self._error_handlers: list[ErrorHandler] = []
        self._closed = False
        self._watch: Watch | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._updated = asyncio.Event()

    @property
    def collection(self) -> str:
        return self.model.collection

    @property
    def items(self) -> tuple[T, ...]:
        """The sorted and filtered materialized list."""
        return self._visible

    @property
    def all_items(self) -> tuple[T, ...]:
        """The sorted list before any client-side filter."""
        return self._items

    def get(self, document_id: str) -> T | None:
        return next((item for item in self._items if item.id == document_id), None)

    # Ordering and filtering
    def sort_key(self, item: T) -> Any:
        return item.created_at

    def matches(self, item: T) -> bool:
        return True

    # Lifecycle
    async def start(self) -> LiveCollection[T]:
        """Attach the store watch and begin applying snapshots."""
        if self.state != CollectionState.UNINITIALIZED:
            raise GradientError(f"Cannot start a {self.state.value} collection")

        self._watch = await self.store.watch(self.collection, self.filters)
        self.state = CollectionState.SUBSCRIBED
        self._consumer = asyncio.create_task(self._consume(self._watch))
        logger.debug("Watching %s %s", self.collection, self.filters or "")
        return self

    async def close(self) -> None:
        """Detach the watch. The collection cannot be restarted."""
        if self._closed:
            return
        self._closed = True
        self.state = CollectionState.UNSUBSCRIBED
        self._subscribers.clear()
        self._error_handlers.clear()

        if self._consumer:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None

        if self._watch:
            await self._watch.close()
            self._watch = None

        # Release anyone blocked in wait_for
        self._updated.set()

    async def __aenter__(self) -> LiveCollection[T]:
        return await self.start()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _consume(self, watch: Watch) -> None:
        try:
            async for snapshot in watch:
                self.apply_snapshot(snapshot)
        except StoreError as e:
            logger.error("Watch on %s stopped: %s", self.collection, e)
            self._fail(e)

    def _fail(self, error: StoreError) -> None:
        """The watch is gone: end the collection and tell error handlers."""
        self.error = error
        self.state = CollectionState.UNSUBSCRIBED
        for handler in list(self._error_handlers):
            try:
                handler(error)
            except Exception:
                logger.exception("Error handler of %s failed", self.collection)
        self._subscribers.clear()
        self._error_handlers.clear()
        self._updated.set()

    # Snapshot handling
    def apply_snapshot(self, snapshot: Snapshot) -> bool:
        """
        Replace the materialized list with the content of ``snapshot``.

        Returns False if the snapshot was stale or the collection is closed.
        """
        if self.state == CollectionState.UNSUBSCRIBED:
            return False
        if snapshot.sequence <= self._last_sequence:
            logger.debug(
                "Discarding stale %s snapshot %d (applied %d)",
                self.collection,
                snapshot.sequence,
                self._last_sequence,
            )
            return False

        self._last_sequence = snapshot.sequence
        decoded = decode_documents(self.model, snapshot.documents)
        self._items = tuple(sorted(decoded, key=self.sort_key))
        self.state = CollectionState.UPDATED
        self.refresh()
        return True

    def refresh(self) -> None:
        """Re-run the filter over the current list and push it to subscribers."""
        self._visible = tuple(item for item in self._items if self.matches(item))
        self._publish()

    def _publish(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback(self._visible)
            except Exception:
                logger.exception("Subscriber of %s failed", self.collection)

        updated, self._updated = self._updated, asyncio.Event()
        updated.set()

    # Subscribers
    def subscribe(self, callback: Subscriber, on_error: ErrorHandler | None = None) -> Callable[[], None]:
        """
        Register for list updates. The current list is delivered at once if
        a snapshot has already been applied. ``on_error`` is called once if
        the watch fails, after which no more updates arrive. Returns an
        unsubscribe function.
        """
        if self.state == CollectionState.UNSUBSCRIBED:
            raise GradientError(f"Cannot subscribe to closed {self.collection} collection")

        self._subscribers.append(callback)
        if on_error is not None:
            self._error_handlers.append(on_error)
        if self.state == CollectionState.UPDATED:
            try:
                callback(self._visible)
            except Exception:
                logger.exception("Subscriber of %s failed", self.collection)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)
            if on_error in self._error_handlers:
                self._error_handlers.remove(on_error)

        return unsubscribe

    async def wait_for(
        self,
        predicate: Callable[[tuple[T, ...]], bool],
        timeout: float = 5.0,
    ) -> tuple[T, ...]:
        """Wait until ``predicate`` holds for the visible list."""

        async def _wait() -> tuple[T, ...]:
            while True:
                updated = self._updated
                if self.state == CollectionState.UPDATED and predicate(self._visible):
                    return self._visible
                if self.error is not None:
                    raise StoreError(f"{self.collection} watch failed: {self.error}", self.collection) from self.error
                if self.state == CollectionState.UNSUBSCRIBED:
                    raise GradientError(f"{self.collection} collection closed")
                await updated.wait()

        return await asyncio.wait_for(_wait(), timeout)


class SearchScope(str, Enum):
    """Fields a project search looks at."""

    ALL = "All"
    NAME = "Name"
    DESCRIPTION = "Description"
    WORKSHOPS = "Workshops"
    MATERIALS = "Materials"


def _contains(haystack: str | Iterable[str], needle: str) -> bool:
    if not isinstance(haystack, str):
        haystack = " ".join(haystack)
    return needle in haystack.lower()


def project_matches(project: Project, query: str, scope: SearchScope = SearchScope.ALL) -> bool:
    """Case-insensitive substring match of ``query`` within ``scope``."""
    needle = query.strip().lower()
    if not needle:
        return True

    fields: dict[SearchScope, list[str | list[str]]] = {
        SearchScope.NAME: [project.name],
        SearchScope.DESCRIPTION: [project.description],
        SearchScope.WORKSHOPS: [project.workshops],
        SearchScope.MATERIALS: [project.materials_needed, project.materials_found],
    }
    if scope == SearchScope.ALL:
        candidates = [value for values in fields.values() for value in values]
    else:
        candidates = fields[scope]
    return any(_contains(value, needle) for value in candidates)


class ProjectCollection(LiveCollection[Project]):
    """All projects, by name, with an optional client-side search."""

    model = Project

    def __init__(self, store: BaseStore):
        super().__init__(store)
        self.query = ""
        self.scope = SearchScope.ALL

    def sort_key(self, item: Project) -> Any:
        return item.name.lower()

    def matches(self, item: Project) -> bool:
        return project_matches(item, self.query, self.scope)

    def search(self, query: str, scope: SearchScope = SearchScope.ALL) -> list[Project]:
        """Filter the materialized list without changing the pushed view."""
        return [project for project in self._items if project_matches(project, query, scope)]

    def set_search(self, query: str, scope: SearchScope = SearchScope.ALL) -> None:
        """Configure the filter applied to the pushed view."""
        self.query = query
        self.scope = scope
        if self.state == CollectionState.UPDATED:
            self.refresh()


class TaskCollection(LiveCollection[Task]):
    """
    Tasks of one project.

    Order: incomplete before completed, dated before undated, soonest due
    first, then newest created first.
    """

    model = Task

    def __init__(self, store: BaseStore, project_id: str):
        super().__init__(store, {"projectId": project_id})
        self.project_id = project_id

    def sort_key(self, item: Task) -> Any:
        due = item.due_date.timestamp() if item.due_date else 0.0
        return (item.is_completed, item.due_date is None, due, -item.created_at.timestamp())


class NoteCollection(LiveCollection[Note]):
    """Notes of one project, newest first."""

    model = Note

    def __init__(self, store: BaseStore, project_id: str):
        super().__init__(store, {"projectId": project_id})
        self.project_id = project_id

    def sort_key(self, item: Note) -> Any:
        return -item.created_at.timestamp()
