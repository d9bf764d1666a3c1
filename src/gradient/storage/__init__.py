"""Storage backends for the Gradient sync core."""

from gradient.storage.base import ArrayRemove, ArrayUnion, BaseStore, Batch, Snapshot, Watch
from gradient.storage.blobs import BlobStore, LocalBlobStore, MemoryBlobStore
from gradient.storage.memory_store import MemoryStore
from gradient.storage.pocketbase_store import PocketBaseStore
from gradient.storage.sqlite_store import SQLiteStore

__all__ = [
    "ArrayRemove",
    "ArrayUnion",
    "BaseStore",
    "Batch",
    "Snapshot",
    "Watch",
    "BlobStore",
    "LocalBlobStore",
    "MemoryBlobStore",
    "MemoryStore",
    "PocketBaseStore",
    "SQLiteStore",
]
