"""Tests for PublishClient and configuration saving."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from sheetpublish import config as cfg
from sheetpublish.client import PublishClient, configure_document
from sheetpublish.config import PublishConfig
from sheetpublish.exceptions import ConfigurationError, StorageError
from sheetpublish.properties import JsonFilePropertyStore, MemoryPropertyStore
from sheetpublish.publisher import PublishStatus
from sheetpublish.storage import LocalObjectStore
from sheetpublish.transport import LocalFileTransport
from sheetpublish.triggers import MemorySubscriptionRegistry
from tests.fakes import (
    FailingObjectStore,
    FailingSubscriptionRegistry,
    ReadOnlyPropertyStore,
)

NOW = datetime(2024, 6, 2, 10, 15, 30, 250000, tzinfo=timezone.utc)

FORM = {
    cfg.BUCKET_NAME: "exports",
    cfg.REGION: "eu-west-1",
    cfg.PATH: "/sheets/",
    cfg.ACCESS_KEY_ID: "AKIAEXAMPLE",
    cfg.SECRET_KEY: "secret-key-1234",
}


def _client(
    transport: LocalFileTransport,
    properties: MemoryPropertyStore,
    store: LocalObjectStore | FailingObjectStore,
) -> PublishClient:
    return PublishClient(transport, properties, lambda config: store)


class TestPublish:
    async def test_full_snapshot(
        self,
        local_transport: LocalFileTransport,
        config: PublishConfig,
        object_store: LocalObjectStore,
    ) -> None:
        properties = MemoryPropertyStore({"roster": config.to_properties()})
        client = _client(local_transport, properties, object_store)

        result = await client.publish("roster", now=NOW)

        assert result.status is PublishStatus.PUBLISHED
        assert result.key == "sheets/roster.json"
        assert result.record_count == 3
        envelope = json.loads(object_store.puts[0].body)
        assert [r["Name"] for r in envelope["data"]] == ["Ada", "Grace", "Linus"]
        assert "recordsSince" not in envelope
        assert properties.load("roster")[cfg.LAST_PUBLISHED] == "2024-06-02T10:15:30.250Z"

    async def test_tracked_publish_filters_and_saves(
        self,
        local_transport: LocalFileTransport,
        config: PublishConfig,
        object_store: LocalObjectStore,
    ) -> None:
        tracked = PublishConfig(
            bucket_name=config.bucket_name,
            region=config.region,
            path=config.path,
            access_key_id=config.access_key_id,
            secret_key=config.secret_key,
            track_changes=True,
            updated_at_column=3,
            last_published="2024-01-01T00:00:00.000Z",
        )
        properties = MemoryPropertyStore({"roster": tracked.to_properties()})
        client = _client(local_transport, properties, object_store)

        result = await client.publish("roster", now=NOW)

        assert result.key == "sheets/roster-2024-06-02T10-15-30-250.json"
        envelope = json.loads(object_store.puts[0].body)
        assert [r["Name"] for r in envelope["data"]] == ["Ada"]
        assert envelope["recordsSince"] == "2024-01-01T00:00:00.000Z"
        assert client.get_config("roster").last_published == "2024-06-02T10:15:30.250Z"

    async def test_not_configured_reads_nothing(
        self, tmp_path: Path, object_store: LocalObjectStore
    ) -> None:
        # The transport would fail on any read
        client = _client(LocalFileTransport(tmp_path), MemoryPropertyStore(), object_store)

        result = await client.publish("roster")

        assert result.status is PublishStatus.NOT_CONFIGURED
        assert object_store.puts == []

    async def test_other_sheet_edit_declined(
        self,
        local_transport: LocalFileTransport,
        config: PublishConfig,
        object_store: LocalObjectStore,
    ) -> None:
        properties = MemoryPropertyStore({"roster": config.to_properties()})
        client = _client(local_transport, properties, object_store)

        result = await client.publish("roster", edited_sheet_index=1)

        assert result.status is PublishStatus.WRONG_SHEET
        assert object_store.puts == []
        assert cfg.LAST_PUBLISHED not in properties.load("roster")

    async def test_read_failure_reported(
        self, tmp_path: Path, config: PublishConfig, object_store: LocalObjectStore
    ) -> None:
        properties = MemoryPropertyStore({"missing": config.to_properties()})
        client = _client(LocalFileTransport(tmp_path), properties, object_store)

        result = await client.publish("missing")

        assert result.status is PublishStatus.FAILED
        assert "Golden file not found" in result.message
        assert object_store.puts == []

    async def test_upload_failure_keeps_last_published(
        self, local_transport: LocalFileTransport, config: PublishConfig
    ) -> None:
        previous = config.with_last_published("2024-01-01T00:00:00.000Z")
        properties = MemoryPropertyStore({"roster": previous.to_properties()})
        store = FailingObjectStore(StorageError("exports", "sheets/roster.json", "denied"))
        client = _client(local_transport, properties, store)

        result = await client.publish("roster", now=NOW)

        assert result.status is PublishStatus.FAILED
        assert store.attempts == 1
        assert properties.load("roster")[cfg.LAST_PUBLISHED] == "2024-01-01T00:00:00.000Z"

    async def test_unreadable_properties_reported(
        self,
        tmp_path: Path,
        local_transport: LocalFileTransport,
        object_store: LocalObjectStore,
    ) -> None:
        properties = JsonFilePropertyStore(tmp_path)
        path = properties.path_for("roster")
        path.parent.mkdir(parents=True)
        path.write_text("{broken", encoding="utf-8")
        client = PublishClient(local_transport, properties, lambda c: object_store)

        result = await client.publish("roster")

        assert result.status is PublishStatus.FAILED
        assert "is unusable" in result.message
        assert object_store.puts == []

    async def test_save_failure_after_upload_still_published(
        self,
        local_transport: LocalFileTransport,
        config: PublishConfig,
        object_store: LocalObjectStore,
    ) -> None:
        properties = ReadOnlyPropertyStore({"roster": config.to_properties()})
        client = _client(local_transport, properties, object_store)

        result = await client.publish("roster", now=NOW)

        assert result.status is PublishStatus.PUBLISHED
        assert len(object_store.puts) == 1
        assert "could not be saved" in result.message
        assert "disk full" in result.message
        assert cfg.LAST_PUBLISHED not in properties.load("roster")


class TestConfigure:
    def test_saves_and_subscribes(self) -> None:
        properties = MemoryPropertyStore()
        registry = MemorySubscriptionRegistry()

        result = configure_document(properties, registry, "doc", FORM)

        assert result.subscribed
        assert result.config.path == "/sheets/"
        assert properties.load("doc")[cfg.BUCKET_NAME] == "exports"
        assert len(registry.find("doc")) == 1
        assert "published on every edit" in result.message

    def test_resubmitting_keeps_one_subscription(self) -> None:
        properties = MemoryPropertyStore()
        registry = MemorySubscriptionRegistry()

        configure_document(properties, registry, "doc", FORM)
        configure_document(properties, registry, "doc", FORM)

        assert len(registry.find("doc")) == 1

    def test_keeps_last_published(self) -> None:
        properties = MemoryPropertyStore(
            {"doc": {cfg.LAST_PUBLISHED: "2024-01-01T00:00:00.000Z"}}
        )
        result = configure_document(properties, None, "doc", FORM)

        assert result.config.last_published == "2024-01-01T00:00:00.000Z"
        assert result.message == "Configuration saved."
        assert not result.subscribed

    def test_subscription_failure_keeps_saved_config(self) -> None:
        properties = MemoryPropertyStore()

        result = configure_document(
            properties, FailingSubscriptionRegistry(), "doc", FORM
        )

        assert not result.subscribed
        assert result.message == (
            "Configuration saved, but publishing on edit could not be enabled: "
            "trigger quota exceeded"
        )
        assert properties.load("doc")[cfg.REGION] == "eu-west-1"

    def test_invalid_form_saves_nothing(self) -> None:
        properties = MemoryPropertyStore()
        form = {**FORM, cfg.TRACK_CHANGES: "true", cfg.UPDATED_AT: "D"}

        with pytest.raises(ConfigurationError):
            configure_document(properties, MemorySubscriptionRegistry(), "doc", form)
        assert properties.load("doc") == {}

    async def test_client_configure_uses_registry(
        self, local_transport: LocalFileTransport, object_store: LocalObjectStore
    ) -> None:
        registry = MemorySubscriptionRegistry()
        client = PublishClient(
            local_transport, MemoryPropertyStore(), lambda c: object_store, registry
        )

        result = client.configure("roster", FORM)

        assert result.subscribed
        assert client.get_config("roster").is_configured
