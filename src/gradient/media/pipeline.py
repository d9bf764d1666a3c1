"""
Media upload pipeline for note attachments.

The primary payload must reach blob storage for an upload to succeed. The
thumbnail is a secondary artifact: it is derived and uploaded afterwards and
any failure there leaves ``thumbnail_url`` empty instead of failing the
upload.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from uuid import uuid4

from gradient.exceptions import StoreError, UploadError
from gradient.media.thumbnails import Thumbnailer
from gradient.schema import Attachment, AttachmentType
from gradient.storage.blobs import BlobStore

logger = logging.getLogger(__name__)

# Stored file extension and content type per media type
MEDIA_FORMATS: dict[AttachmentType, tuple[str, str]] = {
    AttachmentType.IMAGE: ("jpg", "image/jpeg"),
    AttachmentType.VIDEO: ("mp4", "video/mp4"),
    AttachmentType.AUDIO: ("m4a", "audio/m4a"),
}

THUMBNAIL_CONTENT_TYPE = "image/jpeg"


@dataclass(frozen=True)
class UploadResult:
    """Durable references for one uploaded payload."""

    file_url: str
    thumbnail_url: str | None = None


@dataclass(frozen=True)
class PendingMedia:
    """A captured payload waiting to be uploaded with its note."""

    data: bytes
    type: AttachmentType


class MediaPipeline:
    """
    Uploads attachment payloads and their thumbnails.

    Storage layout:
    - attachments/<uuid>.<ext>
    - attachments/thumbnails/<uuid>.jpg
    """

    def __init__(self, blobs: BlobStore, thumbnailer: Thumbnailer | None = None):
        self.blobs = blobs
        self.thumbnailer = thumbnailer or Thumbnailer()

    async def upload(self, data: bytes, media_type: AttachmentType) -> UploadResult:
        """
        Upload a payload and, for images and videos, a derived thumbnail.

        Raises UploadError only if the primary payload upload fails.
        """
        file_id = str(uuid4())
        extension, content_type = MEDIA_FORMATS[media_type]

        try:
            file_url = await self.blobs.upload(f"attachments/{file_id}.{extension}", data, content_type)
        except (StoreError, OSError) as e:
            raise UploadError(f"Failed to upload {media_type.value}: {e}") from e

        if not media_type.has_thumbnail:
            return UploadResult(file_url=file_url)

        return UploadResult(file_url=file_url, thumbnail_url=await self._upload_thumbnail(file_id, data, media_type))

    async def _upload_thumbnail(self, file_id: str, data: bytes, media_type: AttachmentType) -> str | None:
        try:
            thumbnail = await self.thumbnailer.create(data, media_type)
            if thumbnail is None:
                return None
            return await self.blobs.upload(f"attachments/thumbnails/{file_id}.jpg", thumbnail, THUMBNAIL_CONTENT_TYPE)
        except Exception as e:
            logger.warning("Thumbnail for %s %s unavailable: %s", media_type.value, file_id, e)
            return None

    async def upload_all(self, items: Sequence[PendingMedia]) -> list[Attachment]:
        """
        Upload several payloads concurrently and wait for all of them.

        If any upload fails, UploadError is raised once every upload has
        resolved. Blobs from the successful siblings stay in storage.
        """
        if not items:
            return []

        results = await asyncio.gather(
            *(self.upload(item.data, item.type) for item in items),
            return_exceptions=True,
        )

        failures: list[UploadError] = []
        for result in results:
            if isinstance(result, UploadError):
                failures.append(result)
            elif isinstance(result, BaseException):
                raise result

        if failures:
            logger.warning("%d of %d attachment uploads failed", len(failures), len(items))
            raise UploadError(
                f"{len(failures)} of {len(items)} uploads failed: {failures[0]}",
                failed=len(failures),
                total=len(items),
            ) from failures[0]

        return [
            Attachment(type=item.type, file_url=result.file_url, thumbnail_url=result.thumbnail_url)
            for item, result in zip(items, results)
        ]

    async def delete_blobs(self, urls: Iterable[str]) -> list[str]:
        """
        Best-effort deletion of stored blobs.

        Failures are logged and returned; they are never raised.
        """
        urls = list(urls)
        if not urls:
            return []

        results = await asyncio.gather(*(self.blobs.delete(url) for url in urls), return_exceptions=True)

        failed = []
        for url, result in zip(urls, results):
            if isinstance(result, Exception):
                logger.warning("Failed to delete blob %s: %s", url, result)
                failed.append(url)
        return failed
