"""sheetpublish - Publish a Google Sheet's first sheet as JSON to S3.

Rows of the first sheet become header-keyed JSON records, optionally limited
to rows changed since the last publish, and are uploaded as one JSON
document per publish.
"""

__version__ = "0.1.0"

from sheetpublish.client import ConfigureResult, PublishClient, configure_document
from sheetpublish.config import PublishConfig, Settings, get_settings
from sheetpublish.exceptions import (
    ConfigurationError,
    PropertyStoreError,
    SheetPublishError,
    StorageError,
    SubscriptionError,
)
from sheetpublish.extractor import (
    build_envelope,
    extract_records,
    object_key,
    serialize_envelope,
)
from sheetpublish.publisher import PublishResult, PublishStatus, publish
from sheetpublish.storage import LocalObjectStore, ObjectStore, S3ObjectStore
from sheetpublish.transport import (
    APIError,
    AuthenticationError,
    GoogleSheetsTransport,
    LocalFileTransport,
    NotFoundError,
    Transport,
    TransportError,
)

__all__ = [
    "APIError",
    "AuthenticationError",
    "ConfigurationError",
    "ConfigureResult",
    "GoogleSheetsTransport",
    "LocalFileTransport",
    "LocalObjectStore",
    "NotFoundError",
    "ObjectStore",
    "PropertyStoreError",
    "PublishClient",
    "PublishConfig",
    "PublishResult",
    "PublishStatus",
    "S3ObjectStore",
    "Settings",
    "SheetPublishError",
    "StorageError",
    "SubscriptionError",
    "Transport",
    "TransportError",
    "__version__",
    "build_envelope",
    "configure_document",
    "extract_records",
    "get_settings",
    "object_key",
    "publish",
    "serialize_envelope",
]
