"""
Note and attachment entities.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator, model_validator

from gradient.exceptions import ParseError
from gradient.schema.base import Coordinate, Document, Entity

logger = logging.getLogger(__name__)

# Notes carry at most this many attachments; extras are dropped.
MAX_ATTACHMENTS = 4


class AttachmentType(str, Enum):
    """Kinds of media a note can carry."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"

    @property
    def has_thumbnail(self) -> bool:
        return self in (AttachmentType.IMAGE, AttachmentType.VIDEO)


class Attachment(Entity):
    """
    A media payload owned by a single note.

    ``thumbnail_url`` may be absent even for images and videos when the
    thumbnail could not be produced.
    """

    required_keys: ClassVar[tuple[str, ...]] = ("id", "type", "fileURL", "createdAt")

    type: AttachmentType
    file_url: StrictStr = Field(alias="fileURL")
    thumbnail_url: StrictStr | None = Field(default=None, alias="thumbnailURL")

    @property
    def blob_urls(self) -> list[str]:
        """Every storage reference held by this attachment."""
        return [url for url in (self.file_url, self.thumbnail_url) if url]


class Location(BaseModel):
    """Latitude/longitude pair where a note was taken."""

    model_config = ConfigDict(frozen=True)

    latitude: Coordinate
    longitude: Coordinate


class Note(Document):
    """A free-text note with up to four media attachments."""

    collection: ClassVar[str] = "notes"
    required_keys: ClassVar[tuple[str, ...]] = (
        "id",
        "content",
        "attachments",
        "projectId",
        "createdAt",
        "updatedAt",
    )
    immutable_fields: ClassVar[frozenset[str]] = frozenset({"id", "created_at", "project_id"})

    title: StrictStr | None = None
    content: StrictStr
    attachments: list[Attachment] = Field(default_factory=list)
    location: Location | None = None
    project_id: StrictStr = Field(alias="projectId", min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _fold_coordinates(cls, data: Any) -> Any:
        # Stored documents keep latitude/longitude as top-level keys.
        if isinstance(data, dict) and ("latitude" in data or "longitude" in data):
            data = dict(data)
            latitude, longitude = data.pop("latitude", None), data.pop("longitude", None)
            # Both cleared means no location
            if latitude is None and longitude is None:
                data["location"] = None
            else:
                data["location"] = {"latitude": latitude, "longitude": longitude}
        return data

    @field_validator("attachments", mode="before")
    @classmethod
    def _decode_attachments(cls, value: Any) -> Any:
        # An undecodable attachment is dropped; the note itself survives.
        if not isinstance(value, list):
            return value
        decoded = []
        for item in value:
            if isinstance(item, Attachment):
                decoded.append(item)
                continue
            try:
                decoded.append(Attachment.from_document(item))
            except ParseError as e:
                logger.warning("Dropping unreadable attachment %s: %s", e.document_id, e)
        return decoded

    @field_validator("attachments")
    @classmethod
    def _cap_attachments(cls, attachments: list[Attachment]) -> list[Attachment]:
        return attachments[:MAX_ATTACHMENTS]

    def to_document(self) -> dict[str, Any]:
        document = super().to_document()
        location = document.pop("location", None)
        if location:
            document["latitude"] = location["latitude"]
            document["longitude"] = location["longitude"]
        return document

    def to_patch(self) -> dict[str, Any]:
        document = super().to_patch()
        if document.pop("location", None) is None and "latitude" not in document:
            document["latitude"] = None
            document["longitude"] = None
        return document

    @property
    def blob_urls(self) -> list[str]:
        return [url for attachment in self.attachments for url in attachment.blob_urls]
