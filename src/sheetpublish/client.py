"""PublishClient - Main API for sheetpublish.

Wires the pieces around the publish operation: loads a document's
configuration from the property store, reads the first sheet through a
Transport, publishes, and saves the new last-published timestamp. Also
handles saving configuration forms, which (re)registers the change
subscription.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from datetime import datetime

from loguru import logger

from sheetpublish.config import PublishConfig
from sheetpublish.exceptions import PropertyStoreError, SubscriptionError
from sheetpublish.properties import PropertyStore
from sheetpublish.publisher import (
    PublishResult,
    PublishStatus,
    check_publishable,
    publish,
)
from sheetpublish.storage import ObjectStore
from sheetpublish.transport import Transport, TransportError
from sheetpublish.triggers import (
    PUBLISH_HANDLER,
    Subscription,
    SubscriptionRegistry,
    ensure_subscription,
)

StoreFactory = Callable[[PublishConfig], ObjectStore]


@dataclass(frozen=True)
class ConfigureResult:
    """Result of saving a configuration form."""

    config: PublishConfig
    subscription: Subscription | None
    message: str

    @property
    def subscribed(self) -> bool:
        return self.subscription is not None


class PublishClient:
    """Client for publishing a spreadsheet's first sheet as JSON.

    Example:
        >>> from sheetpublish.transport import GoogleSheetsTransport
        >>> from sheetpublish.properties import JsonFilePropertyStore
        >>> from sheetpublish.storage import S3ObjectStore
        >>> client = PublishClient(
        ...     GoogleSheetsTransport(access_token="ya29..."),
        ...     JsonFilePropertyStore("~/.config/sheetpublish"),
        ...     S3ObjectStore.from_config,
        ... )
        >>> result = await client.publish("1BxiMVs0XRA5nFMdKvBdBZjgmUUqptlbs74OgvE2upms")
    """

    def __init__(
        self,
        transport: Transport,
        properties: PropertyStore,
        store_factory: StoreFactory,
        subscriptions: SubscriptionRegistry | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            transport: Transport used to read the sheet snapshot
            properties: Store holding each document's configuration
            store_factory: Builds the object store for a configuration
            subscriptions: Registry for change subscriptions; configure()
                skips subscribing when omitted
        """
        self._transport = transport
        self._properties = properties
        self._store_factory = store_factory
        self._subscriptions = subscriptions

    def get_config(self, spreadsheet_id: str) -> PublishConfig:
        """Load a document's publish configuration."""
        return PublishConfig.from_properties(self._properties.load(spreadsheet_id))

    async def publish(
        self,
        spreadsheet_id: str,
        *,
        edited_sheet_index: int | None = None,
        now: datetime | None = None,
    ) -> PublishResult:
        """Publish the first sheet of a spreadsheet.

        Declined publishes (not configured, another sheet edited) return
        before anything is fetched. Property-store, fetch and upload failures
        are logged and reported as FAILED. The last-published timestamp is
        saved only after a successful upload; if that save fails the result
        stays PUBLISHED and its message says so.
        """
        log = logger.bind(document_id=spreadsheet_id)
        try:
            config = self.get_config(spreadsheet_id)
        except PropertyStoreError as e:
            log.error("Could not load configuration of {}: {}", spreadsheet_id, e)
            return PublishResult(
                status=PublishStatus.FAILED,
                document_id=spreadsheet_id,
                config=PublishConfig(),
                message=str(e),
            )

        declined = check_publishable(spreadsheet_id, config, edited_sheet_index)
        if declined is not None:
            return declined

        try:
            snapshot = await self._transport.get_snapshot(spreadsheet_id)
        except TransportError as e:
            log.opt(exception=e).error("Could not read {}: {}", spreadsheet_id, e)
            return PublishResult(
                status=PublishStatus.FAILED,
                document_id=spreadsheet_id,
                config=config,
                message=str(e),
            )
        log.debug(
            "Read {} row(s) from sheet '{}'", len(snapshot.rows), snapshot.sheet_title
        )

        result = await publish(
            spreadsheet_id,
            snapshot.rows,
            config,
            self._store_factory(config),
            now=now,
            edited_sheet_index=edited_sheet_index,
        )
        if not result.published:
            return result

        try:
            self._properties.save(spreadsheet_id, result.config.to_properties())
        except PropertyStoreError as e:
            log.error("Published {} but could not save lastPublished: {}", result.key, e)
            return replace(
                result,
                message=(
                    f"{result.message}, but the publish time could not be saved "
                    f"and the next publish will repeat these rows: {e.reason}"
                ),
            )
        return result

    def configure(
        self, spreadsheet_id: str, form: Mapping[str, str]
    ) -> ConfigureResult:
        """Save a configuration form and subscribe the document to changes."""
        return configure_document(
            self._properties, self._subscriptions, spreadsheet_id, form
        )


def configure_document(
    properties: PropertyStore,
    subscriptions: SubscriptionRegistry | None,
    spreadsheet_id: str,
    form: Mapping[str, str],
) -> ConfigureResult:
    """Save a configuration form and subscribe the document to changes.

    A subscription failure does not undo the saved configuration; it is
    reported in the returned message instead.

    Raises:
        ConfigurationError: If the form contains an invalid value.
    """
    previous = PublishConfig.from_properties(properties.load(spreadsheet_id))
    config = PublishConfig.from_form(form, previous)
    properties.save(spreadsheet_id, config.to_properties())
    logger.info("Saved publish configuration for {}", spreadsheet_id)

    if subscriptions is None:
        return ConfigureResult(
            config=config, subscription=None, message="Configuration saved."
        )

    try:
        subscription = ensure_subscription(subscriptions, spreadsheet_id, PUBLISH_HANDLER)
    except SubscriptionError as e:
        logger.error("Subscription for {} failed: {}", spreadsheet_id, e)
        return ConfigureResult(
            config=config,
            subscription=None,
            message=(
                "Configuration saved, but publishing on edit could not be "
                f"enabled: {e.reason}"
            ),
        )

    return ConfigureResult(
        config=config,
        subscription=subscription,
        message="Configuration saved. The sheet will be published on every edit.",
    )
