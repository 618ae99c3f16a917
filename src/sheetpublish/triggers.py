"""Change subscriptions.

A subscription ties a document to the handler that runs when the document
changes. Each document+handler pair has at most one subscription;
``ensure_subscription`` keeps it that way.
"""

from __future__ import annotations

import json
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path

from loguru import logger

from sheetpublish.exceptions import SubscriptionError

PUBLISH_HANDLER = "publish"


@dataclass(frozen=True)
class Subscription:
    """A registered change subscription."""

    subscription_id: str
    document_id: str
    handler: str


class SubscriptionRegistry(ABC):
    """Abstract base class for the change-notification registry.

    Implementations raise SubscriptionError when the registry cannot be
    read or updated.
    """

    @abstractmethod
    def find(self, document_id: str) -> list[Subscription]:
        """Return the subscriptions registered for a document."""
        ...

    @abstractmethod
    def create(self, document_id: str, handler: str) -> Subscription:
        """Register a new subscription."""
        ...

    @abstractmethod
    def delete(self, subscription_id: str) -> None:
        """Remove a subscription. Unknown ids are ignored."""
        ...


class MemorySubscriptionRegistry(SubscriptionRegistry):
    """Registry kept in memory."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, Subscription] = {}

    def find(self, document_id: str) -> list[Subscription]:
        return [s for s in self._subscriptions.values() if s.document_id == document_id]

    def create(self, document_id: str, handler: str) -> Subscription:
        subscription = Subscription(
            subscription_id=uuid.uuid4().hex,
            document_id=document_id,
            handler=handler,
        )
        self._subscriptions[subscription.subscription_id] = subscription
        return subscription

    def delete(self, subscription_id: str) -> None:
        self._subscriptions.pop(subscription_id, None)


class JsonFileSubscriptionRegistry(SubscriptionRegistry):
    """Registry persisted to ``<state_dir>/subscriptions.json``."""

    def __init__(self, state_dir: str | Path) -> None:
        self._path = Path(state_dir).expanduser() / "subscriptions.json"

    def _read(self) -> list[Subscription]:
        if not self._path.exists():
            return []
        try:
            entries = json.loads(self._path.read_text(encoding="utf-8"))
            return [Subscription(**entry) for entry in entries]
        except (OSError, json.JSONDecodeError, TypeError) as e:
            raise SubscriptionError(f"cannot read {self._path}: {e}") from e

    def _write(self, subscriptions: list[Subscription]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                json.dumps([asdict(s) for s in subscriptions], indent=2),
                encoding="utf-8",
            )
        except OSError as e:
            raise SubscriptionError(f"cannot write {self._path}: {e}") from e

    def find(self, document_id: str) -> list[Subscription]:
        return [s for s in self._read() if s.document_id == document_id]

    def create(self, document_id: str, handler: str) -> Subscription:
        subscriptions = self._read()
        subscription = Subscription(
            subscription_id=uuid.uuid4().hex,
            document_id=document_id,
            handler=handler,
        )
        subscriptions.append(subscription)
        self._write(subscriptions)
        return subscription

    def delete(self, subscription_id: str) -> None:
        subscriptions = self._read()
        remaining = [s for s in subscriptions if s.subscription_id != subscription_id]
        if len(remaining) != len(subscriptions):
            self._write(remaining)


def ensure_subscription(
    registry: SubscriptionRegistry,
    document_id: str,
    handler: str = PUBLISH_HANDLER,
) -> Subscription:
    """Make sure exactly one subscription exists for the document and handler.

    Existing subscriptions for the same pair are removed before a fresh one
    is created, so calling this repeatedly never accumulates duplicates.

    Raises:
        SubscriptionError: If the registry fails.
    """
    try:
        for existing in registry.find(document_id):
            if existing.handler == handler:
                registry.delete(existing.subscription_id)
                logger.debug(
                    "Removed subscription {} for {}",
                    existing.subscription_id,
                    document_id,
                )
        subscription = registry.create(document_id, handler)
    except SubscriptionError:
        raise
    except Exception as e:
        raise SubscriptionError(str(e), document_id) from e

    logger.info(
        "Subscribed handler '{}' to changes of {}", handler, document_id
    )
    return subscription
