"""Configuration for sheetpublish.

Two kinds of configuration live here:

- ``PublishConfig``: the per-document publish settings (bucket, credentials,
  change tracking). It is loaded from a document's property bag before a
  publish and written back afterwards, so the publish operation itself only
  ever sees an explicit object.
- ``Settings``: process-wide settings loaded from environment variables
  (prefix ``SHEETPUBLISH_``) using pydantic-settings.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from functools import lru_cache
from pathlib import Path

from loguru import logger
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sheetpublish.exceptions import ConfigurationError
from sheetpublish.extractor import format_timestamp

# Property bag keys
BUCKET_NAME = "bucketName"
REGION = "region"
PATH = "path"
ACCESS_KEY_ID = "awsAccessKeyId"
SECRET_KEY = "awsSecretKey"
TRACK_CHANGES = "trackChanges"
UPDATED_AT = "updatedAt"
LAST_PUBLISHED = "lastPublished"

TRACK_CHANGES_ENABLED = "true"
_DISABLED_VALUES = {"", "false", "0", "off", "no"}


@dataclass(frozen=True)
class PublishConfig:
    """Publish settings for one document.

    Attributes:
        bucket_name: Target bucket.
        region: Region of the bucket.
        path: Optional key prefix (no leading or trailing slash needed).
        access_key_id: Access key id used to sign the upload.
        secret_key: Secret key used to sign the upload.
        track_changes: Whether change tracking is enabled.
        updated_at_column: Zero-based index of the "last updated" column.
        last_published: ISO-8601 timestamp of the last successful publish,
            kept exactly as stored.
    """

    bucket_name: str = ""
    region: str = ""
    path: str = ""
    access_key_id: str = ""
    secret_key: str = ""
    track_changes: bool = False
    updated_at_column: int | None = None
    last_published: str | None = None

    @property
    def is_configured(self) -> bool:
        """True when bucket, region and both credential halves are set."""
        return all(
            (self.bucket_name, self.region, self.access_key_id, self.secret_key)
        )

    @property
    def tracking_applies(self) -> bool:
        """True when rows should be filtered by the "last updated" column."""
        return self.track_changes and self.updated_at_column is not None

    def with_last_published(self, published_at: datetime | str) -> PublishConfig:
        """Return a copy with a new last-published timestamp."""
        if isinstance(published_at, datetime):
            published_at = format_timestamp(published_at)
        return replace(self, last_published=published_at)

    @classmethod
    def from_properties(cls, props: Mapping[str, str]) -> PublishConfig:
        """Build a configuration from a document's property bag."""
        return cls(
            bucket_name=_clean(props.get(BUCKET_NAME)),
            region=_clean(props.get(REGION)),
            path=_clean(props.get(PATH)),
            access_key_id=_clean(props.get(ACCESS_KEY_ID)),
            secret_key=_clean(props.get(SECRET_KEY)),
            track_changes=_parse_flag(props.get(TRACK_CHANGES)),
            updated_at_column=_parse_column(props.get(UPDATED_AT)),
            last_published=_clean(props.get(LAST_PUBLISHED)) or None,
        )

    @classmethod
    def from_form(
        cls,
        form: Mapping[str, str],
        previous: PublishConfig | None = None,
    ) -> PublishConfig:
        """Build a configuration from submitted configuration-form fields.

        The form uses the same keys as the property bag. The last-published
        timestamp is never taken from the form; it is carried over from
        ``previous``.

        Raises:
            ConfigurationError: If ``updatedAt`` is not a non-negative integer.
        """
        raw_column = _clean(form.get(UPDATED_AT))
        updated_at_column: int | None = None
        if raw_column:
            try:
                updated_at_column = int(raw_column)
            except ValueError:
                raise ConfigurationError(
                    UPDATED_AT, f"expected a column index, got {raw_column!r}"
                ) from None
            if updated_at_column < 0:
                raise ConfigurationError(
                    UPDATED_AT, "column index must not be negative"
                )

        track_changes = _parse_flag(form.get(TRACK_CHANGES))
        return cls(
            bucket_name=_clean(form.get(BUCKET_NAME)),
            region=_clean(form.get(REGION)),
            path=_clean(form.get(PATH)),
            access_key_id=_clean(form.get(ACCESS_KEY_ID)),
            secret_key=_clean(form.get(SECRET_KEY)),
            track_changes=track_changes,
            updated_at_column=updated_at_column if track_changes else None,
            last_published=previous.last_published if previous else None,
        )

    def to_properties(self) -> dict[str, str]:
        """Serialize to a property bag. Unset optional values are omitted."""
        props = {
            BUCKET_NAME: self.bucket_name,
            REGION: self.region,
            PATH: self.path,
            ACCESS_KEY_ID: self.access_key_id,
            SECRET_KEY: self.secret_key,
        }
        if self.track_changes:
            props[TRACK_CHANGES] = TRACK_CHANGES_ENABLED
            if self.updated_at_column is not None:
                props[UPDATED_AT] = str(self.updated_at_column)
        if self.last_published:
            props[LAST_PUBLISHED] = self.last_published
        return props

    def masked(self) -> dict[str, str]:
        """Property bag for display, with the secret key hidden."""
        props = self.to_properties()
        if self.secret_key:
            props[SECRET_KEY] = "*" * 8 + self.secret_key[-4:]
        return props


def _clean(value: str | None) -> str:
    return value.strip() if value else ""


def _parse_flag(value: str | None) -> bool:
    return value is not None and value.strip().lower() not in _DISABLED_VALUES


def _parse_column(value: str | None) -> int | None:
    """Parse a stored column index, ignoring values that are not integers."""
    cleaned = _clean(value)
    if not cleaned:
        return None
    try:
        column = int(cleaned)
    except ValueError:
        logger.warning("Ignoring non-integer {} property: {!r}", UPDATED_AT, cleaned)
        return None
    if column < 0:
        logger.warning("Ignoring negative {} property: {}", UPDATED_AT, column)
        return None
    return column


class Settings(BaseSettings):
    """Process settings loaded from environment variables.

    Environment variables (all optional):
    - SHEETPUBLISH_ENVIRONMENT: development, staging or production
    - SHEETPUBLISH_LOG_LEVEL: minimum log level
    - SHEETPUBLISH_STATE_DIR: where document properties and subscriptions live
    - SHEETPUBLISH_SERVICE_ACCOUNT_PATH: Google service account JSON key
    - SHEETPUBLISH_S3_ENDPOINT_URL: endpoint of an S3-compatible store
    """

    model_config = SettingsConfigDict(
        env_prefix="SHEETPUBLISH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: str = "development"
    log_level: str = "INFO"
    state_dir: Path = Path.home() / ".config" / "sheetpublish"
    service_account_path: Path | None = None
    request_timeout: int = 60
    s3_endpoint_url: str | None = None

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is a known value."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a known value."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of: {allowed}")
        return v_upper

    @field_validator("request_timeout")
    @classmethod
    def validate_request_timeout(cls, v: int) -> int:
        """Validate the request timeout is positive."""
        if v <= 0:
            raise ValueError("request_timeout must be positive")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
