"""Media upload and thumbnail support for note attachments."""

from .pipeline import MEDIA_FORMATS, MediaPipeline, PendingMedia, UploadResult
from .thumbnails import Thumbnailer

__all__ = [
    "MediaPipeline",
    "PendingMedia",
    "UploadResult",
    "Thumbnailer",
    "MEDIA_FORMATS",
]
