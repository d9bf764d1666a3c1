"""
Binary object storage for note attachments.

Blobs are addressed by a path on upload and by the durable URL returned from
that upload afterwards.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from urllib.parse import unquote, urlparse

from gradient.exceptions import StoreError

MEMORY_SCHEME = "memory"


class BlobStore(ABC):
    """Abstract base class for attachment payload storage."""

    @abstractmethod
    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Store ``data`` at ``path`` and return its durable URL."""

    @abstractmethod
    async def delete(self, url: str) -> None:
        """Delete the blob behind ``url``."""

    @abstractmethod
    async def download(self, url: str) -> bytes:
        """Read back the blob behind ``url``."""


class MemoryBlobStore(BlobStore):
    """Ephemeral blob storage keyed by ``memory://`` URLs."""

    def __init__(self) -> None:
        self.blobs: dict[str, tuple[bytes, str]] = {}

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        url = f"{MEMORY_SCHEME}://{path}"
        self.blobs[url] = (bytes(data), content_type)
        return url

    async def delete(self, url: str) -> None:
        if url not in self.blobs:
            raise StoreError(f"No blob at {url}")
        del self.blobs[url]

    async def download(self, url: str) -> bytes:
        try:
            return self.blobs[url][0]
        except KeyError:
            raise StoreError(f"No blob at {url}") from None


class LocalBlobStore(BlobStore):
    """
    Filesystem blob storage rooted at ``root``, returning ``file://`` URLs.
    """

    def __init__(self, root: str | Path = "~/gradient/media"):
        self.root = Path(root).expanduser()

    def _resolve(self, url: str) -> Path:
        parsed = urlparse(url)
        if parsed.scheme != "file":
            raise StoreError(f"Not a local blob URL: {url}")
        path = Path(unquote(parsed.path)).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise StoreError(f"Blob URL outside media root: {url}")
        return path

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        target = (self.root / path).resolve()
        if not target.is_relative_to(self.root.resolve()):
            raise StoreError(f"Blob path escapes media root: {path}")

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StoreError(f"Failed to write blob {path}: {e}") from e
        return target.as_uri()

    async def delete(self, url: str) -> None:
        path = self._resolve(url)
        try:
            await asyncio.to_thread(path.unlink)
        except OSError as e:
            raise StoreError(f"Failed to delete blob {url}: {e}") from e

    async def download(self, url: str) -> bytes:
        path = self._resolve(url)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise StoreError(f"Failed to read blob {url}: {e}") from e
