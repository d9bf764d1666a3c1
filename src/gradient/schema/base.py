"""
Shared building blocks for Gradient entities.

Entities are frozen pydantic models with a canonical document form: camelCase
keys, timestamps as epoch seconds and enums as their string labels. Decoding
fails closed, a document with a missing or mis-shaped field is rejected
rather than defaulted.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Annotated, Any, ClassVar, TypeVar
from uuid import uuid4

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer
from pydantic import ValidationError as SchemaValidationError

from gradient.exceptions import ParseError, ValidationError

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Entity")


def new_id() -> str:
    """Generate a client-side entity id."""
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _from_epoch(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"expected epoch seconds, got {type(value).__name__}")
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError) as e:
        raise ValueError(f"timestamp out of range: {value}") from e


def _to_epoch(value: datetime) -> float:
    return value.timestamp()


def _require_number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"expected a number, got {type(value).__name__}")
    return float(value)


# Datetime on the model, epoch seconds in the document.
Timestamp = Annotated[datetime, BeforeValidator(_from_epoch), PlainSerializer(_to_epoch, return_type=float)]

# Number that refuses strings and booleans.
Coordinate = Annotated[float, BeforeValidator(_require_number)]


class Entity(BaseModel):
    """Identity and document codec shared by every stored record."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    # Document keys that must be present for decoding to succeed.
    required_keys: ClassVar[tuple[str, ...]] = ("id", "createdAt")

    id: str = Field(default_factory=new_id, min_length=1, strict=True)
    created_at: Timestamp = Field(default_factory=utcnow, alias="createdAt")

    def to_document(self) -> dict[str, Any]:
        """Serialize to the canonical key-value document form."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_document(cls: type[E], data: Any) -> E:
        """
        Decode a stored document.

        Raises ParseError if any required key is missing or any field has
        the wrong shape.
        """
        if not isinstance(data, dict):
            raise ParseError(f"{cls.__name__} document must be a mapping, got {type(data).__name__}")

        document_id = data.get("id") if isinstance(data.get("id"), str) else None
        missing = [key for key in cls.required_keys if key not in data]
        if missing:
            raise ParseError(
                f"{cls.__name__} document missing {', '.join(missing)}",
                document_id=document_id,
            )

        try:
            return cls.model_validate(data)
        except SchemaValidationError as e:
            raise ParseError(
                f"Invalid {cls.__name__} document: {e.error_count()} error(s)",
                document_id=document_id,
            ) from e

    def to_json(self) -> bytes:
        """Structured serialization built on the document form."""
        return json.dumps(self.to_document(), sort_keys=True).encode()

    @classmethod
    def from_json(cls: type[E], raw: bytes | str) -> E:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise ParseError(f"Invalid {cls.__name__} JSON") from e
        return cls.from_document(data)


class Document(Entity):
    """A top-level entity stored in its own collection."""

    collection: ClassVar[str] = ""
    required_keys: ClassVar[tuple[str, ...]] = ("id", "createdAt", "updatedAt")

    # Fields that revise() refuses to change.
    immutable_fields: ClassVar[frozenset[str]] = frozenset({"id", "created_at"})

    updated_at: Timestamp = Field(default_factory=utcnow, alias="updatedAt")

    def to_patch(self) -> dict[str, Any]:
        """Document form for a partial update; cleared optional fields are sent as null."""
        document = self.to_document()
        for name, info in type(self).model_fields.items():
            key = info.alias or name
            if getattr(self, name) is None and key not in document:
                document[key] = None
        return document

    def revise(self: E, **changes: Any) -> E:
        """
        Return a validated copy with ``changes`` applied and a fresh
        ``updated_at``.
        """
        locked = sorted(set(changes) & self.immutable_fields)
        if locked:
            raise ValidationError(f"Cannot change {', '.join(locked)} on {type(self).__name__}")

        unknown = sorted(set(changes) - set(type(self).model_fields))
        if unknown:
            raise ValidationError(f"Unknown {type(self).__name__} field(s): {', '.join(unknown)}")

        data = {name: getattr(self, name) for name in type(self).model_fields}
        data.update(changes)
        data["updated_at"] = utcnow()
        try:
            return type(self).model_validate(data)
        except SchemaValidationError as e:
            raise ValidationError(f"Invalid {type(self).__name__} revision: {e}") from e


def decode_documents(model: type[E], documents: Iterable[Any]) -> list[E]:
    """
    Decode a collection load, skipping documents that fail to parse.

    A corrupt or partial document is left out of this load rather than
    failing it; a later correct write heals it.
    """
    decoded: list[E] = []
    for document in documents:
        try:
            decoded.append(model.from_document(document))
        except ParseError as e:
            logger.warning("Skipping unparsable %s document %s: %s", model.__name__, e.document_id, e)
    return decoded
