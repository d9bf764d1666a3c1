"""
In-memory document store.

Fast, ephemeral storage used as a test double and as the default local
backend. Every committed write pushes a fresh full snapshot to each open
watch on the affected collection.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import AsyncIterator, Mapping
from typing import Any

from gradient.exceptions import DocumentNotFound, StoreError
from gradient.storage.base import (
    BaseStore,
    Batch,
    BatchOperation,
    Snapshot,
    Watch,
    apply_fields,
    matches,
)

logger = logging.getLogger(__name__)

_CLOSED = object()


class MemoryWatch(Watch):
    """Queue-backed watch registration on a MemoryStore."""

    def __init__(self, store: MemoryStore, collection: str, filters: Mapping[str, Any] | None):
        self.store = store
        self.collection = collection
        self.filters = dict(filters or {})
        self.closed = False
        self._sequence = 0
        self._queue: asyncio.Queue[Any] = asyncio.Queue()

    def emit(self) -> None:
        """Queue a snapshot of the current matching documents."""
        if self.closed:
            return
        self._sequence += 1
        documents = self.store.snapshot_documents(self.collection, self.filters)
        self._queue.put_nowait(Snapshot(sequence=self._sequence, documents=documents))

    async def __aiter__(self) -> AsyncIterator[Snapshot]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED or self.closed:
                return
            yield item

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.store.detach(self)
        self._queue.put_nowait(_CLOSED)


class MemoryBatch(Batch):
    def __init__(self, store: MemoryStore):
        super().__init__()
        self.store = store

    async def commit(self) -> None:
        if self.committed:
            raise StoreError("Batch already committed")
        await self.store.apply_batch(self.operations)
        self.committed = True


class MemoryStore(BaseStore):
    """
    In-memory dictionary-based document store.

    Features:
    - O(1) access by collection and id
    - Equality-filtered queries and watches
    - Atomic array union/remove and all-or-nothing batches
    - No persistence (ephemeral)
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._watches: list[MemoryWatch] = []
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Nothing to open."""

    async def close(self) -> None:
        """Detach every open watch."""
        for watch in list(self._watches):
            await watch.close()

    @property
    def watch_count(self) -> int:
        """Number of live watch registrations."""
        return len(self._watches)

    # Reads
    async def get(self, collection: str, document_id: str) -> dict[str, Any] | None:
        document = self._collections.get(collection, {}).get(document_id)
        return copy.deepcopy(document) if document is not None else None

    async def query(self, collection: str, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        return self.snapshot_documents(collection, filters)

    async def watch(self, collection: str, filters: Mapping[str, Any] | None = None) -> Watch:
        watch = MemoryWatch(self, collection, filters)
        self._watches.append(watch)
        watch.emit()
        return watch

    # Writes
    async def put(self, collection: str, document_id: str, fields: Mapping[str, Any]) -> None:
        await self.apply_batch([BatchOperation("put", collection, document_id, dict(fields))])

    async def patch(self, collection: str, document_id: str, fields: Mapping[str, Any]) -> None:
        await self.apply_batch([BatchOperation("patch", collection, document_id, dict(fields))])

    async def delete(self, collection: str, document_id: str) -> None:
        await self.apply_batch([BatchOperation("delete", collection, document_id)])

    def batch(self) -> Batch:
        return MemoryBatch(self)

    # Internals
    def snapshot_documents(self, collection: str, filters: Mapping[str, Any] | None) -> list[dict[str, Any]]:
        documents = self._collections.get(collection, {}).values()
        return [copy.deepcopy(d) for d in documents if matches(d, filters)]

    async def persist(self, working: dict[str, dict[str, dict[str, Any]]], operations: list[BatchOperation]) -> None:
        """Hook for durable subclasses; raising here aborts the batch."""

    def detach(self, watch: MemoryWatch) -> None:
        if watch in self._watches:
            self._watches.remove(watch)

    async def apply_batch(self, operations: list[BatchOperation]) -> None:
        """Apply operations on a working copy and swap it in only if all succeed."""
        async with self._lock:
            touched = {op.collection for op in operations}
            working = {name: dict(self._collections.get(name, {})) for name in touched}

            for op in operations:
                documents = working[op.collection]
                if op.kind == "put":
                    documents[op.document_id] = apply_fields(documents.get(op.document_id, {}), copy.deepcopy(op.fields or {}))
                elif op.kind == "patch":
                    if op.document_id not in documents:
                        raise DocumentNotFound(
                            f"No document {op.collection}/{op.document_id}",
                            collection=op.collection,
                            document_id=op.document_id,
                        )
                    documents[op.document_id] = apply_fields(documents[op.document_id], copy.deepcopy(op.fields or {}))
                elif op.kind == "delete":
                    documents.pop(op.document_id, None)
                else:
                    raise StoreError(f"Unknown batch operation: {op.kind}")

            await self.persist(working, operations)
            self._collections.update(working)

        logger.debug("Committed %d operation(s) on %s", len(operations), ", ".join(sorted(touched)))
        for watch in list(self._watches):
            if watch.collection in touched:
                watch.emit()
