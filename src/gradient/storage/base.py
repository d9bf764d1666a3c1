"""
Base interface for remote document stores.

A store exposes collection-scoped document reads and writes, atomic array
field mutations, all-or-nothing batches and live queries that emit complete
snapshots.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ArrayUnion:
    """Patch value: append ``values`` not already present, atomically."""

    values: tuple[Any, ...]

    def __init__(self, values: list[Any] | tuple[Any, ...]):
        object.__setattr__(self, "values", tuple(values))

    def apply(self, current: Any) -> list[Any]:
        merged = list(current) if isinstance(current, list) else []
        for value in self.values:
            if value not in merged:
                merged.append(value)
        return merged


@dataclass(frozen=True)
class ArrayRemove:
    """Patch value: drop every occurrence of ``values``, atomically."""

    values: tuple[Any, ...]

    def __init__(self, values: list[Any] | tuple[Any, ...]):
        object.__setattr__(self, "values", tuple(values))

    def apply(self, current: Any) -> list[Any]:
        if not isinstance(current, list):
            return []
        return [value for value in current if value not in self.values]


def apply_fields(document: Mapping[str, Any], fields: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``document`` with ``fields`` merged in, resolving array mutations."""
    merged = dict(document)
    for key, value in fields.items():
        if isinstance(value, (ArrayUnion, ArrayRemove)):
            merged[key] = value.apply(merged.get(key))
        else:
            merged[key] = value
    return merged


def matches(document: Mapping[str, Any], filters: Mapping[str, Any] | None) -> bool:
    """Equality filter used by queries and watches."""
    if not filters:
        return True
    return all(document.get(key) == value for key, value in filters.items())


@dataclass(frozen=True)
class Snapshot:
    """
    Full state of a watched query.

    ``sequence`` increases with every emission of a watch so consumers can
    discard deliveries that arrive out of order.
    """

    sequence: int
    documents: list[dict[str, Any]] = field(default_factory=list)


class Watch(ABC):
    """A standing live-query registration."""

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[Snapshot]:
        ...

    @abstractmethod
    async def close(self) -> None:
        """Detach the registration. No snapshot is delivered afterwards."""


@dataclass
class BatchOperation:
    kind: str  # put, patch, delete
    collection: str
    document_id: str
    fields: dict[str, Any] | None = None


class Batch(ABC):
    """
    Accumulates writes and commits them as one all-or-nothing unit.
    """

    def __init__(self) -> None:
        self.operations: list[BatchOperation] = []
        self.committed = False

    def put(self, collection: str, document_id: str, fields: Mapping[str, Any]) -> Batch:
        self.operations.append(BatchOperation("put", collection, document_id, dict(fields)))
        return self

    def patch(self, collection: str, document_id: str, fields: Mapping[str, Any]) -> Batch:
        self.operations.append(BatchOperation("patch", collection, document_id, dict(fields)))
        return self

    def delete(self, collection: str, document_id: str) -> Batch:
        self.operations.append(BatchOperation("delete", collection, document_id))
        return self

    def __len__(self) -> int:
        return len(self.operations)

    @abstractmethod
    async def commit(self) -> None:
        """Apply every queued operation or none of them."""


class BaseStore(ABC):
    """
    Abstract base class for remote document stores.

    Every failure surfaces as a StoreError; stores never retry.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Open connections and authenticate."""

    @abstractmethod
    async def close(self) -> None:
        """Release connections and detach every open watch."""

    # Reads
    @abstractmethod
    async def get(self, collection: str, document_id: str) -> dict[str, Any] | None:
        """Fetch a document by id, or None if it does not exist."""

    @abstractmethod
    async def query(self, collection: str, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        """One-shot read of every document matching the equality filters."""

    @abstractmethod
    async def watch(self, collection: str, filters: Mapping[str, Any] | None = None) -> Watch:
        """Subscribe to full snapshots of the documents matching the filters."""

    # Writes
    @abstractmethod
    async def put(self, collection: str, document_id: str, fields: Mapping[str, Any]) -> None:
        """Create or overwrite the listed fields of a document."""

    @abstractmethod
    async def patch(self, collection: str, document_id: str, fields: Mapping[str, Any]) -> None:
        """Update fields of an existing document. Raises DocumentNotFound otherwise."""

    @abstractmethod
    async def delete(self, collection: str, document_id: str) -> None:
        """Delete a document."""

    @abstractmethod
    def batch(self) -> Batch:
        """Start a new write batch."""
