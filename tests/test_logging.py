"""Tests for logging configuration."""

from __future__ import annotations

import json
import logging

import pytest
from loguru import logger

from sheetpublish.logging import configure_logging


class TestJsonLogging:
    def test_record_is_one_json_line(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(is_production=True)

        logger.bind(document_id="doc").warning("Upload of {} failed", "doc.json")

        line = capsys.readouterr().err.strip()
        entry = json.loads(line)
        assert entry["severity"] == "WARNING"
        assert entry["message"] == "Upload of doc.json failed"
        assert entry["document_id"] == "doc"

    def test_exception_is_serialized(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(is_production=True)

        try:
            raise RuntimeError("boom")
        except RuntimeError as e:
            logger.opt(exception=e).error("failed")

        entry = json.loads(capsys.readouterr().err.strip())
        assert entry["exception"]["type"] == "RuntimeError"
        assert entry["exception"]["value"] == "boom"

    def test_level_filter(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(is_production=True, log_level="WARNING")

        logger.info("quiet")

        assert capsys.readouterr().err == ""

    def test_standard_logging_is_intercepted(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        configure_logging(is_production=True)

        logging.getLogger("sheetpublish.test").warning("from stdlib")

        entry = json.loads(capsys.readouterr().err.strip())
        assert entry["message"] == "from stdlib"
        assert logging.getLogger("botocore").level == logging.WARNING
