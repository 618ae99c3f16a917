"""Custom exceptions for the sheetpublish publish workflow."""

from __future__ import annotations


class SheetPublishError(Exception):
    """Base exception for sheetpublish errors."""

    pass


class ConfigurationError(SheetPublishError):
    """Raised when a configuration form contains an invalid value."""

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid value for '{field}': {reason}")


class PropertyStoreError(SheetPublishError):
    """Raised when a document's stored properties cannot be read or written."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Property file '{path}' is unusable: {reason}")


class StorageError(SheetPublishError):
    """Raised when an object upload fails.

    Covers network errors, rejected credentials and storage-service errors.
    """

    def __init__(self, bucket: str, key: str, reason: str) -> None:
        self.bucket = bucket
        self.key = key
        self.reason = reason
        super().__init__(f"Upload of s3://{bucket}/{key} failed: {reason}")


class SubscriptionError(SheetPublishError):
    """Raised when the change subscription for a document cannot be registered."""

    def __init__(self, reason: str, document_id: str | None = None) -> None:
        self.document_id = document_id
        self.reason = reason
        target = f" for '{document_id}'" if document_id else ""
        super().__init__(f"Could not register change subscription{target}: {reason}")
