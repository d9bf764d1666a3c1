"""
Pytest configuration and shared fixtures for Gradient tests.
"""

import io
import tempfile
from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import pytest
from PIL import Image

from gradient.exceptions import StoreError
from gradient.media import MediaPipeline, Thumbnailer
from gradient.notifications import ReminderScheduler
from gradient.storage import MemoryBlobStore, MemoryStore
from gradient.storage.base import BatchOperation
from gradient.sync import SyncManager


class FlakyStore(MemoryStore):
    """MemoryStore that fails chosen operations and records batches."""

    def __init__(self):
        super().__init__()
        self.failures: set[tuple[str, str]] = set()
        self.batches = []
        self.applied: list[BatchOperation] = []

    def fail(self, kind: str, collection: str) -> None:
        self.failures.add((kind, collection))

    def batch(self):
        batch = super().batch()
        self.batches.append(batch)
        return batch

    async def apply_batch(self, operations):
        for op in operations:
            if (op.kind, op.collection) in self.failures:
                raise StoreError(f"Injected {op.kind} failure", op.collection, op.document_id)
        await super().apply_batch(operations)
        self.applied.extend(operations)


class FlakyBlobStore(MemoryBlobStore):
    """MemoryBlobStore that can fail uploads by call number and deletes by URL."""

    def __init__(self):
        super().__init__()
        self.fail_uploads: set[int] = set()
        self.fail_deletes: set[str] = set()
        self.upload_calls = 0
        self.deleted: list[str] = []
        self.delete_attempts: list[str] = []

    async def upload(self, path, data, content_type):
        self.upload_calls += 1
        if self.upload_calls in self.fail_uploads:
            raise StoreError(f"Injected upload failure for {path}")
        return await super().upload(path, data, content_type)

    async def delete(self, url):
        self.delete_attempts.append(url)
        if url in self.fail_deletes:
            raise StoreError(f"Injected delete failure for {url}")
        await super().delete(url)
        self.deleted.append(url)


class StaticThumbnailer(Thumbnailer):
    """Thumbnailer that skips decoding."""

    def __init__(self, fail: bool = False):
        super().__init__()
        self.fail = fail

    async def create(self, data, media_type):
        if not media_type.has_thumbnail:
            return None
        if self.fail:
            raise OSError("cannot decode")
        return b"thumbnail"


class RecordingReminders(ReminderScheduler):
    """Reminder collaborator that records every call."""

    def __init__(self, fail: bool = False):
        self.calls: list[tuple] = []
        self.fail = fail

    async def schedule(self, reminder_id, title, body, fire_date):
        self.calls.append(("schedule", reminder_id, title, body, fire_date))
        if self.fail:
            raise RuntimeError("notification service unavailable")

    async def cancel(self, reminder_id):
        self.calls.append(("cancel", reminder_id))
        if self.fail:
            raise RuntimeError("notification service unavailable")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
async def memory_store() -> AsyncGenerator:
    """Create a MemoryStore instance for testing."""
    store = MemoryStore()
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def flaky_store() -> AsyncGenerator:
    store = FlakyStore()
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def sqlite_store(temp_dir: Path) -> AsyncGenerator:
    """Create a SQLiteStore instance for testing."""
    from gradient.storage import SQLiteStore

    store = SQLiteStore(temp_dir / "gradient.db")
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def blob_store() -> FlakyBlobStore:
    return FlakyBlobStore()


@pytest.fixture
def pipeline(blob_store) -> MediaPipeline:
    return MediaPipeline(blob_store, StaticThumbnailer())


@pytest.fixture
def reminders() -> RecordingReminders:
    return RecordingReminders()


@pytest.fixture
def failing_reminders() -> RecordingReminders:
    return RecordingReminders(fail=True)


@pytest.fixture
def manager(flaky_store, pipeline, reminders) -> SyncManager:
    """SyncManager over a FlakyStore with no failures configured."""
    return SyncManager(flaky_store, pipeline, reminders)


@pytest.fixture
def jpeg_bytes() -> bytes:
    """A small real JPEG image."""
    buffer = io.BytesIO()
    Image.new("RGB", (800, 600), color=(200, 80, 40)).save(buffer, format="JPEG")
    return buffer.getvalue()
