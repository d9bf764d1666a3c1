"""
Error taxonomy for the Gradient sync core.

Every failure is per-operation and recoverable by retrying the user action.
"""

from __future__ import annotations


class GradientError(Exception):
    """Base class for all Gradient errors."""


class ValidationError(GradientError):
    """A write was rejected before reaching the store."""


class ParseError(GradientError):
    """A stored document could not be decoded into an entity."""

    def __init__(self, message: str, document_id: str | None = None):
        super().__init__(message)
        self.document_id = document_id


class StoreError(GradientError):
    """
    A remote store call failed.

    ``partial`` is True when an earlier step of a multi-document operation
    already succeeded, so the remote state is knowingly inconsistent.
    """

    partial: bool = False

    def __init__(self, message: str, collection: str | None = None, document_id: str | None = None):
        super().__init__(message)
        self.collection = collection
        self.document_id = document_id


class DocumentNotFound(StoreError):
    """A patch or read targeted a document that does not exist."""


class PartialCascadeError(StoreError):
    """
    The first step of a cascade succeeded and the back-reference step failed.

    The child document exists (or was deleted) but the parent's
    back-reference array was not updated. No compensation is attempted.
    """

    partial = True

    def __init__(
        self,
        message: str,
        *,
        step: str,
        child_collection: str,
        child_id: str,
        parent_id: str,
        cause: BaseException | None = None,
    ):
        super().__init__(message, collection=child_collection, document_id=child_id)
        self.step = step
        self.child_id = child_id
        self.parent_id = parent_id
        self.cause = cause


class UploadError(GradientError):
    """A media payload could not be uploaded."""

    def __init__(self, message: str, failed: int = 1, total: int = 1):
        super().__init__(message)
        self.failed = failed
        self.total = total
