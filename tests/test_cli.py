"""Tests for the command line interface."""

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from sheetpublish import __main__ as cli
from sheetpublish.config import get_settings
from sheetpublish.credentials import Token
from sheetpublish.properties import JsonFilePropertyStore
from sheetpublish.transport import LocalFileTransport
from sheetpublish.triggers import JsonFileSubscriptionRegistry

CONFIGURE_ARGS = [
    "configure",
    "https://docs.google.com/spreadsheets/d/roster/edit#gid=0",
    "--bucket",
    "exports",
    "--region",
    "eu-west-1",
    "--path",
    "sheets",
    "--access-key-id",
    "AKIAEXAMPLE",
    "--secret-key",
    "secret-key-1234",
]


@pytest.fixture(autouse=True)
def state_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    state = tmp_path / "state"
    monkeypatch.setenv("SHEETPUBLISH_STATE_DIR", str(state))
    get_settings.cache_clear()
    yield state
    get_settings.cache_clear()


class FakeCredentialsManager:
    def __init__(self, service_account_path: Any = None) -> None:
        pass

    def get_token(self) -> Token:
        return Token(access_token="token", principal="test", expires_at=0)


class TestParseSpreadsheetId:
    def test_url(self) -> None:
        url = "https://docs.google.com/spreadsheets/d/1Bxi_MVs-0XRA/edit#gid=0"
        assert cli.parse_spreadsheet_id(url) == "1Bxi_MVs-0XRA"

    def test_plain_id(self) -> None:
        assert cli.parse_spreadsheet_id("1Bxi_MVs-0XRA") == "1Bxi_MVs-0XRA"


class TestConfigure:
    def test_saves_properties_and_subscription(
        self, state_dir: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert cli.main(CONFIGURE_ARGS) == 0

        props = JsonFilePropertyStore(state_dir).load("roster")
        assert props["bucketName"] == "exports"
        assert "trackChanges" not in props
        assert len(JsonFileSubscriptionRegistry(state_dir).find("roster")) == 1
        assert "published on every edit" in capsys.readouterr().out

    def test_invalid_column(self, capsys: pytest.CaptureFixture[str]) -> None:
        args = [*CONFIGURE_ARGS, "--track-changes", "--updated-at", "D"]
        assert cli.main(args) == 1
        assert "updatedAt" in capsys.readouterr().err

    def test_invalid_settings(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.setenv("SHEETPUBLISH_ENVIRONMENT", "moon")
        assert cli.main(CONFIGURE_ARGS) == 1
        assert "environment" in capsys.readouterr().err


class TestShow:
    def test_masks_secret(self, capsys: pytest.CaptureFixture[str]) -> None:
        cli.main(CONFIGURE_ARGS)
        capsys.readouterr()

        assert cli.main(["show", "roster"]) == 0
        shown = json.loads(capsys.readouterr().out)
        assert shown["awsSecretKey"] == "********1234"
        assert shown["awsAccessKeyId"] == "AKIAEXAMPLE"

    def test_unconfigured(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert cli.main(["show", "roster"]) == 0
        assert "not configured" in capsys.readouterr().err


class TestPublish:
    def test_not_configured_is_not_an_error(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert cli.main(["publish", "roster"]) == 0
        assert "must be configured" in capsys.readouterr().out

    def test_other_sheet_skipped(self, capsys: pytest.CaptureFixture[str]) -> None:
        cli.main(CONFIGURE_ARGS)
        capsys.readouterr()

        assert cli.main(["publish", "roster", "--edited-sheet", "2"]) == 0
        assert "Sheet 2 is not published" in capsys.readouterr().out

    def test_dry_run_writes_json(
        self,
        state_dir: Path,
        tmp_path: Path,
        golden_dir: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(cli, "CredentialsManager", FakeCredentialsManager)
        monkeypatch.setattr(
            cli,
            "GoogleSheetsTransport",
            lambda access_token, timeout: LocalFileTransport(golden_dir),
        )
        cli.main(CONFIGURE_ARGS)
        output = tmp_path / "out"

        assert cli.main(["publish", "roster", "--output-dir", str(output)]) == 0

        envelope = json.loads((output / "exports" / "sheets" / "roster.json").read_text())
        assert len(envelope["data"]) == 3
        assert "lastPublished" in JsonFilePropertyStore(state_dir).load("roster")
