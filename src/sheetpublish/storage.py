"""Object storage for published envelopes.

Defines the ObjectStore protocol and implementations:
- S3ObjectStore: Production store uploading to Amazon S3 (or an S3-compatible
  endpoint) with boto3
- LocalObjectStore: Writes objects below a local directory, for dry runs and tests
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from sheetpublish.exceptions import StorageError

if TYPE_CHECKING:
    from sheetpublish.config import PublishConfig

CONTENT_TYPE = "application/json; charset=utf-8"


class ObjectStore(ABC):
    """Abstract base class for object storage.

    A single ``put_object`` call is one upload attempt; implementations do
    not retry.
    """

    @abstractmethod
    async def put_object(self, bucket: str, key: str, body: bytes, region: str) -> None:
        """Store ``body`` under ``key`` in ``bucket``.

        Raises:
            StorageError: If the upload fails for any reason.
        """
        ...


class S3ObjectStore(ObjectStore):
    """Uploads objects to S3 using access-key credentials.

    Requests are signed by botocore (Signature Version 4). One boto3 client is
    created per region and reused.
    """

    def __init__(
        self,
        access_key_id: str,
        secret_key: str,
        *,
        endpoint_url: str | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            access_key_id: Access key id
            secret_key: Secret access key
            endpoint_url: Optional endpoint of an S3-compatible service
        """
        self._session = boto3.Session(
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_key,
        )
        self._endpoint_url = endpoint_url
        self._clients: dict[str, Any] = {}

    @classmethod
    def from_config(
        cls, config: PublishConfig, *, endpoint_url: str | None = None
    ) -> S3ObjectStore:
        """Create a store from a document's publish configuration."""
        return cls(
            config.access_key_id, config.secret_key, endpoint_url=endpoint_url
        )

    def _client(self, region: str) -> Any:
        client = self._clients.get(region)
        if client is None:
            client = self._session.client(
                "s3", region_name=region, endpoint_url=self._endpoint_url
            )
            self._clients[region] = client
        return client

    async def put_object(self, bucket: str, key: str, body: bytes, region: str) -> None:
        """Upload the object with a single PutObject request."""
        try:
            await asyncio.to_thread(
                self._client(region).put_object,
                Bucket=bucket,
                Key=key,
                Body=body,
                ContentType=CONTENT_TYPE,
            )
        except ClientError as e:
            error = e.response.get("Error", {})
            code = error.get("Code", "Unknown")
            message = error.get("Message", str(e))
            raise StorageError(bucket, key, f"{code}: {message}") from e
        except BotoCoreError as e:
            raise StorageError(bucket, key, str(e)) from e


@dataclass(frozen=True)
class StoredObject:
    """An object written by LocalObjectStore."""

    bucket: str
    key: str
    region: str
    body: bytes


class LocalObjectStore(ObjectStore):
    """Store that writes objects to ``<root>/<bucket>/<key>``.

    Every put is also recorded in ``puts`` for later inspection.
    """

    def __init__(self, root: Path) -> None:
        """Initialize the store.

        Args:
            root: Directory objects are written below
        """
        self._root = root
        self._puts: list[StoredObject] = []

    async def put_object(self, bucket: str, key: str, body: bytes, region: str) -> None:
        """Write the object to disk."""
        path = self._root / bucket / key
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(body)
        except OSError as e:
            raise StorageError(bucket, key, str(e)) from e
        self._puts.append(StoredObject(bucket=bucket, key=key, region=region, body=body))

    @property
    def puts(self) -> list[StoredObject]:
        """Get recorded puts (for test assertions)."""
        return self._puts
