"""The publish operation.

``publish`` turns a snapshot into a JSON envelope and uploads it with one
attempt. It takes everything it needs as arguments (document id, snapshot,
configuration, store, clock) and never raises: unconfigured documents,
edits to other sheets and failed uploads all come back as a PublishResult
and a log line.

The caller owns persistence. When the result is published, the returned
configuration carries the new last-published timestamp and should be saved;
otherwise it is the input configuration unchanged.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from loguru import logger

from sheetpublish.config import PublishConfig
from sheetpublish.extractor import (
    Row,
    build_envelope,
    extract_records,
    object_key,
    parse_timestamp,
    serialize_envelope,
)
from sheetpublish.storage import ObjectStore

PRIMARY_SHEET_INDEX = 0


class PublishStatus(str, Enum):
    """Outcome of a publish attempt."""

    PUBLISHED = "published"
    NOT_CONFIGURED = "not_configured"
    WRONG_SHEET = "wrong_sheet"
    FAILED = "failed"


@dataclass(frozen=True)
class PublishResult:
    """Result of a publish attempt."""

    status: PublishStatus
    document_id: str
    config: PublishConfig
    key: str | None = None
    record_count: int = 0
    message: str = ""

    @property
    def published(self) -> bool:
        return self.status is PublishStatus.PUBLISHED


def check_publishable(
    document_id: str,
    config: PublishConfig,
    edited_sheet_index: int | None = None,
) -> PublishResult | None:
    """Return a declined result if the document must not be published now.

    Returns None when publishing may go ahead.
    """
    if not config.is_configured:
        logger.bind(document_id=document_id).info(
            "Publishing not configured for {}, skipping", document_id
        )
        return PublishResult(
            status=PublishStatus.NOT_CONFIGURED,
            document_id=document_id,
            config=config,
            message="Bucket, region and credentials must be configured.",
        )

    if edited_sheet_index is not None and edited_sheet_index != PRIMARY_SHEET_INDEX:
        logger.bind(document_id=document_id).debug(
            "Ignoring edit to sheet {} of {}", edited_sheet_index, document_id
        )
        return PublishResult(
            status=PublishStatus.WRONG_SHEET,
            document_id=document_id,
            config=config,
            message=f"Sheet {edited_sheet_index} is not published.",
        )

    return None


async def publish(
    document_id: str,
    rows: Sequence[Row],
    config: PublishConfig,
    store: ObjectStore,
    *,
    now: datetime | None = None,
    edited_sheet_index: int | None = None,
) -> PublishResult:
    """Publish the snapshot of a document's first sheet.

    Args:
        document_id: Spreadsheet id, used in the object key.
        rows: Sheet snapshot; row 0 is the header row.
        config: The document's publish configuration.
        store: Object store that receives the upload.
        now: Publish time. Defaults to the current UTC time.
        edited_sheet_index: Index of the sheet whose edit triggered this
            publish, or None for an explicit publish.

    Returns:
        PublishResult describing what happened.
    """
    log = logger.bind(document_id=document_id)

    declined = check_publishable(document_id, config, edited_sheet_index)
    if declined is not None:
        return declined

    now = now or datetime.now(timezone.utc)

    since: datetime | None = None
    if config.tracking_applies and config.last_published:
        since = parse_timestamp(config.last_published)
        if since is None:
            log.warning(
                "Unreadable lastPublished {!r}, publishing all rows",
                config.last_published,
            )

    records = extract_records(
        rows,
        updated_at_column=config.updated_at_column if config.tracking_applies else None,
        since=since,
    )
    envelope = build_envelope(
        records,
        track_changes=config.track_changes,
        records_since=config.last_published,
    )
    body = serialize_envelope(envelope)
    key = object_key(
        document_id,
        path=config.path,
        published_at=now if config.track_changes else None,
    )

    try:
        await store.put_object(config.bucket_name, key, body, config.region)
    except Exception as e:
        log.opt(exception=e).error(
            "Upload of {} to bucket {} failed: {}", key, config.bucket_name, e
        )
        return PublishResult(
            status=PublishStatus.FAILED,
            document_id=document_id,
            config=config,
            key=key,
            record_count=len(records),
            message=str(e),
        )

    log.info(
        "Published {} record(s) to s3://{}/{}", len(records), config.bucket_name, key
    )
    return PublishResult(
        status=PublishStatus.PUBLISHED,
        document_id=document_id,
        config=config.with_last_published(now),
        key=key,
        record_count=len(records),
        message=f"Published {len(records)} record(s) to {key}",
    )
