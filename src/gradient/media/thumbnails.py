"""
Thumbnail derivation for image and video attachments.

Images are scaled with PIL; videos contribute their first decodable frame,
read with OpenCV. Audio never has a thumbnail.
"""

from __future__ import annotations

import asyncio
import io
import tempfile
from pathlib import Path

from PIL import Image, ImageOps

from gradient.schema import AttachmentType


class Thumbnailer:
    """
    Produces bounded JPEG previews for image and video payloads.
    """

    def __init__(self, max_size: int = 320, quality: int = 80):
        self.max_size = max_size
        self.quality = quality

    async def create(self, data: bytes, media_type: AttachmentType) -> bytes | None:
        """
        Derive a JPEG thumbnail.

        Returns None for media without thumbnails or a video with no
        readable frame. Raises if the payload cannot be decoded.
        """
        if media_type == AttachmentType.IMAGE:
            return await asyncio.to_thread(self._image_thumbnail, data)
        if media_type == AttachmentType.VIDEO:
            return await asyncio.to_thread(self._video_thumbnail, data)
        return None

    def _encode(self, image: Image.Image) -> bytes:
        image = image.convert("RGB")
        image.thumbnail((self.max_size, self.max_size))
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=self.quality)
        return buffer.getvalue()

    def _image_thumbnail(self, data: bytes) -> bytes:
        with Image.open(io.BytesIO(data)) as img:
            return self._encode(ImageOps.exif_transpose(img))

    def _video_thumbnail(self, data: bytes) -> bytes | None:
        import cv2

        with tempfile.NamedTemporaryFile(suffix=".mp4", delete=False) as tmp:
            tmp.write(data)

        try:
            cap = cv2.VideoCapture(tmp.name)
            try:
                if not cap.isOpened():
                    return None
                ok, frame = cap.read()
            finally:
                cap.release()

            if not ok:
                return None
            rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            return self._encode(Image.fromarray(rgb))
        finally:
            Path(tmp.name).unlink(missing_ok=True)
