"""Fake implementations for testing failure paths.

These fakes stand in for the object store, the property store and the
subscription registry when a test needs them to fail on demand.
"""

from __future__ import annotations

from sheetpublish.exceptions import PropertyStoreError
from sheetpublish.properties import MemoryPropertyStore
from sheetpublish.storage import ObjectStore
from sheetpublish.triggers import MemorySubscriptionRegistry, Subscription


class FailingObjectStore(ObjectStore):
    """Object store whose uploads always fail with the given error."""

    def __init__(self, error: Exception) -> None:
        self.error = error
        self.attempts = 0

    async def put_object(self, bucket: str, key: str, body: bytes, region: str) -> None:
        self.attempts += 1
        raise self.error


class FailingSubscriptionRegistry(MemorySubscriptionRegistry):
    """Registry that refuses to create subscriptions."""

    def __init__(self, error: Exception | None = None) -> None:
        super().__init__()
        self.error = error or PermissionError("trigger quota exceeded")

    def create(self, document_id: str, handler: str) -> Subscription:
        raise self.error


class ReadOnlyPropertyStore(MemoryPropertyStore):
    """Property store that loads normally but cannot save."""

    def save(self, document_id: str, props: dict[str, str]) -> None:
        raise PropertyStoreError(f"properties/{document_id}.json", "disk full")
