"""Tests for storage backends."""

import asyncio

import pytest

from gradient.exceptions import DocumentNotFound, StoreError
from gradient.storage import ArrayRemove, ArrayUnion, LocalBlobStore, MemoryBlobStore


async def _next(watch_iter, timeout: float = 1.0):
    return await asyncio.wait_for(watch_iter.__anext__(), timeout)


class TestMemoryStore:
    """Tests for the in-memory document store."""

    @pytest.mark.asyncio
    async def test_put_and_get(self, memory_store):
        """Test basic put and get operations."""
        await memory_store.put("projects", "p1", {"id": "p1", "name": "Bench"})

        doc = await memory_store.get("projects", "p1")
        assert doc == {"id": "p1", "name": "Bench"}

    @pytest.mark.asyncio
    async def test_get_nonexistent(self, memory_store):
        assert await memory_store.get("projects", "missing") is None

    @pytest.mark.asyncio
    async def test_get_returns_copy(self, memory_store):
        """Test that callers cannot mutate stored documents."""
        await memory_store.put("projects", "p1", {"id": "p1", "tasks": ["t1"]})

        doc = await memory_store.get("projects", "p1")
        doc["tasks"].append("t2")

        assert (await memory_store.get("projects", "p1"))["tasks"] == ["t1"]

    @pytest.mark.asyncio
    async def test_patch_merges_fields(self, memory_store):
        await memory_store.put("projects", "p1", {"id": "p1", "name": "Bench", "description": "oak"})
        await memory_store.patch("projects", "p1", {"name": "Stool"})

        assert await memory_store.get("projects", "p1") == {"id": "p1", "name": "Stool", "description": "oak"}

    @pytest.mark.asyncio
    async def test_patch_missing_raises(self, memory_store):
        """Test that patching a missing document raises DocumentNotFound."""
        with pytest.raises(DocumentNotFound) as exc_info:
            await memory_store.patch("projects", "missing", {"name": "x"})

        assert isinstance(exc_info.value, StoreError)
        assert exc_info.value.document_id == "missing"

    @pytest.mark.asyncio
    async def test_array_union_and_remove(self, memory_store):
        """Test atomic array mutations."""
        await memory_store.put("projects", "p1", {"id": "p1", "tasks": ["a"]})

        await memory_store.patch("projects", "p1", {"tasks": ArrayUnion(["b", "a"])})
        assert (await memory_store.get("projects", "p1"))["tasks"] == ["a", "b"]

        await memory_store.patch("projects", "p1", {"tasks": ArrayRemove(["a", "zzz"])})
        assert (await memory_store.get("projects", "p1"))["tasks"] == ["b"]

    @pytest.mark.asyncio
    async def test_query_filters(self, memory_store):
        await memory_store.put("tasks", "t1", {"id": "t1", "projectId": "p1"})
        await memory_store.put("tasks", "t2", {"id": "t2", "projectId": "p2"})

        docs = await memory_store.query("tasks", {"projectId": "p1"})
        assert [d["id"] for d in docs] == ["t1"]
        assert len(await memory_store.query("tasks")) == 2

    @pytest.mark.asyncio
    async def test_delete(self, memory_store):
        await memory_store.put("tasks", "t1", {"id": "t1"})
        await memory_store.delete("tasks", "t1")
        await memory_store.delete("tasks", "t1")

        assert await memory_store.get("tasks", "t1") is None


class TestBatch:
    """Tests for all-or-nothing batches."""

    @pytest.mark.asyncio
    async def test_batch_commits_all(self, memory_store):
        await memory_store.put("projects", "p1", {"id": "p1"})

        batch = memory_store.batch()
        batch.put("tasks", "t1", {"id": "t1"}).delete("projects", "p1")
        assert len(batch) == 2
        await batch.commit()

        assert batch.committed
        assert await memory_store.get("tasks", "t1") == {"id": "t1"}
        assert await memory_store.get("projects", "p1") is None

    @pytest.mark.asyncio
    async def test_failed_batch_applies_nothing(self, memory_store):
        """Test that one failing operation rolls back the whole batch."""
        await memory_store.put("projects", "p1", {"id": "p1"})

        batch = memory_store.batch()
        batch.delete("projects", "p1")
        batch.put("tasks", "t1", {"id": "t1"})
        batch.patch("notes", "missing", {"content": "x"})

        with pytest.raises(DocumentNotFound):
            await batch.commit()

        assert not batch.committed
        assert await memory_store.get("projects", "p1") == {"id": "p1"}
        assert await memory_store.get("tasks", "t1") is None

    @pytest.mark.asyncio
    async def test_batch_commits_once(self, memory_store):
        batch = memory_store.batch()
        batch.put("tasks", "t1", {"id": "t1"})
        await batch.commit()

        with pytest.raises(StoreError):
            await batch.commit()


class TestWatch:
    """Tests for live query snapshots."""

    @pytest.mark.asyncio
    async def test_initial_and_full_snapshots(self, memory_store):
        """Test that every emission is the complete matching member list."""
        await memory_store.put("tasks", "t1", {"id": "t1", "projectId": "p1"})

        watch = await memory_store.watch("tasks", {"projectId": "p1"})
        stream = watch.__aiter__()

        first = await _next(stream)
        assert [d["id"] for d in first.documents] == ["t1"]

        await memory_store.put("tasks", "t2", {"id": "t2", "projectId": "p1"})
        second = await _next(stream)
        assert sorted(d["id"] for d in second.documents) == ["t1", "t2"]
        assert second.sequence > first.sequence

        await memory_store.delete("tasks", "t1")
        third = await _next(stream)
        assert [d["id"] for d in third.documents] == ["t2"]

        await watch.close()

    @pytest.mark.asyncio
    async def test_other_collections_do_not_emit(self, memory_store):
        watch = await memory_store.watch("tasks")
        stream = watch.__aiter__()
        await _next(stream)

        await memory_store.put("notes", "n1", {"id": "n1"})
        await memory_store.put("tasks", "t1", {"id": "t1"})

        snapshot = await _next(stream)
        assert [d["id"] for d in snapshot.documents] == ["t1"]
        await watch.close()

    @pytest.mark.asyncio
    async def test_close_detaches(self, memory_store):
        """Test that no snapshot is delivered after close."""
        watch = await memory_store.watch("tasks")
        assert memory_store.watch_count == 1

        await watch.close()
        assert memory_store.watch_count == 0

        await memory_store.put("tasks", "t1", {"id": "t1"})
        received = [snapshot async for snapshot in watch]
        assert received == []


class TestSQLiteStore:
    """Tests for the SQLite-backed store."""

    @pytest.mark.asyncio
    async def test_persists_across_reopen(self, temp_dir):
        """Test that committed documents survive a restart."""
        from gradient.storage import SQLiteStore

        path = temp_dir / "gradient.db"
        store = SQLiteStore(path)
        await store.initialize()
        await store.put("projects", "p1", {"id": "p1", "tasks": []})
        await store.patch("projects", "p1", {"tasks": ArrayUnion(["t1"])})
        await store.put("notes", "n1", {"id": "n1"})
        await store.delete("notes", "n1")
        await store.close()

        reopened = SQLiteStore(path)
        await reopened.initialize()
        try:
            assert await reopened.get("projects", "p1") == {"id": "p1", "tasks": ["t1"]}
            assert await reopened.get("notes", "n1") is None
        finally:
            await reopened.close()

    @pytest.mark.asyncio
    async def test_watch_emits(self, sqlite_store):
        watch = await sqlite_store.watch("tasks")
        stream = watch.__aiter__()
        await _next(stream)

        await sqlite_store.put("tasks", "t1", {"id": "t1"})
        snapshot = await _next(stream)
        assert [d["id"] for d in snapshot.documents] == ["t1"]
        await watch.close()

    @pytest.mark.asyncio
    async def test_unserializable_batch_rejected(self, sqlite_store):
        """Test that a failed write-through leaves memory untouched."""
        with pytest.raises(StoreError):
            await sqlite_store.put("tasks", "t1", {"id": "t1", "bad": object()})

        assert await sqlite_store.get("tasks", "t1") is None


class TestBlobStores:
    """Tests for attachment blob storage."""

    @pytest.mark.asyncio
    async def test_memory_blob_round_trip(self):
        blobs = MemoryBlobStore()
        url = await blobs.upload("attachments/a.jpg", b"data", "image/jpeg")

        assert url == "memory://attachments/a.jpg"
        assert await blobs.download(url) == b"data"

        await blobs.delete(url)
        with pytest.raises(StoreError):
            await blobs.delete(url)

    @pytest.mark.asyncio
    async def test_local_blob_round_trip(self, temp_dir):
        blobs = LocalBlobStore(temp_dir)
        url = await blobs.upload("attachments/a.jpg", b"data", "image/jpeg")

        assert url.startswith("file://")
        assert (temp_dir / "attachments" / "a.jpg").read_bytes() == b"data"
        assert await blobs.download(url) == b"data"

        await blobs.delete(url)
        assert not (temp_dir / "attachments" / "a.jpg").exists()

    @pytest.mark.asyncio
    async def test_local_blob_rejects_escape(self, temp_dir):
        blobs = LocalBlobStore(temp_dir / "media")

        with pytest.raises(StoreError):
            await blobs.upload("../outside.jpg", b"data", "image/jpeg")
        with pytest.raises(StoreError):
            await blobs.delete((temp_dir / "other.jpg").as_uri())
