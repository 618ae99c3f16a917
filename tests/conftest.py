"""Shared test fixtures for sheetpublish."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from loguru import logger

from sheetpublish.config import PublishConfig
from sheetpublish.storage import LocalObjectStore
from sheetpublish.transport import LocalFileTransport

GOLDEN_DIR = Path(__file__).parent / "golden"


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    """Drop loguru sinks added by configure_logging during a test."""
    yield
    logger.remove()


@pytest.fixture
def golden_dir() -> Path:
    return GOLDEN_DIR


@pytest.fixture
def local_transport() -> LocalFileTransport:
    """Create a transport that reads from golden files."""
    return LocalFileTransport(GOLDEN_DIR)


@pytest.fixture
def object_store(tmp_path: Path) -> LocalObjectStore:
    return LocalObjectStore(tmp_path / "bucket-root")


@pytest.fixture
def config() -> PublishConfig:
    """A fully configured document without change tracking."""
    return PublishConfig(
        bucket_name="exports",
        region="eu-west-1",
        path="sheets",
        access_key_id="AKIAEXAMPLE",
        secret_key="wJalrXUtnFEMI/K7MDENG/bPxRfiCYEXAMPLEKEY",
    )
