"""Transport layer for reading sheet snapshots.

Defines the Transport protocol and implementations:
- GoogleSheetsTransport: Production transport using the Google Sheets API
- LocalFileTransport: Test transport reading from local golden files
"""

from __future__ import annotations

import json
import ssl
import urllib.parse
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import certifi
import httpx
from loguru import logger

from sheetpublish.extractor import SHEETS_EPOCH, CellValue

# API constants
API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"
DEFAULT_TIMEOUT = 60
GRID_FIELDS = (
    "properties.timeZone,"
    "sheets.data.rowData.values("
    "effectiveValue,formattedValue,effectiveFormat.numberFormat.type)"
)

# Number formats whose serial values are dates or times
DATE_TYPES = frozenset({"DATE", "TIME", "DATE_TIME"})


class TransportError(Exception):
    """Base exception for transport errors."""


class AuthenticationError(TransportError):
    """Raised when authentication fails (401/403)."""


class NotFoundError(TransportError):
    """Raised when spreadsheet is not found (404)."""


class APIError(TransportError):
    """Raised when the API returns an error."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class SheetInfo:
    """Information about a single sheet within a spreadsheet."""

    sheet_id: int
    title: str
    index: int


@dataclass(frozen=True)
class SpreadsheetMetadata:
    """Metadata about a spreadsheet, with sheets in tab order."""

    spreadsheet_id: str
    title: str
    sheets: tuple[SheetInfo, ...]

    @property
    def first_sheet(self) -> SheetInfo | None:
        """The sheet at index 0, if the spreadsheet has any sheets."""
        return self.sheets[0] if self.sheets else None


@dataclass(frozen=True)
class Snapshot:
    """Values of the first sheet at publish time."""

    spreadsheet_id: str
    sheet_title: str
    rows: list[list[CellValue]]


class Transport(ABC):
    """Abstract base class for snapshot transport.

    Implementations must provide methods to fetch metadata and values
    from a spreadsheet source (Google API, local files, etc.).
    """

    @abstractmethod
    async def get_metadata(self, spreadsheet_id: str) -> SpreadsheetMetadata:
        """Fetch spreadsheet metadata without cell data.

        Args:
            spreadsheet_id: The spreadsheet identifier

        Returns:
            SpreadsheetMetadata with sheets ordered by index
        """
        ...

    @abstractmethod
    async def get_values(
        self, spreadsheet_id: str, sheet: SheetInfo
    ) -> list[list[CellValue]]:
        """Fetch all cell values of one sheet, row by row."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        ...

    async def get_snapshot(self, spreadsheet_id: str) -> Snapshot:
        """Read the first sheet of a spreadsheet.

        Rows are padded with blank cells to a rectangle. A spreadsheet
        without sheets gives an empty snapshot.
        """
        metadata = await self.get_metadata(spreadsheet_id)
        sheet = metadata.first_sheet
        if sheet is None:
            return Snapshot(spreadsheet_id=spreadsheet_id, sheet_title="", rows=[])
        values = await self.get_values(spreadsheet_id, sheet)
        return Snapshot(
            spreadsheet_id=spreadsheet_id,
            sheet_title=sheet.title,
            rows=pad_rows(values),
        )


class GoogleSheetsTransport(Transport):
    """Production transport that fetches values from the Google Sheets API.

    Handles authentication, SSL, and HTTP communication.
    """

    def __init__(
        self,
        access_token: str,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the transport.

        Args:
            access_token: OAuth2 access token with spreadsheets.readonly scope
            timeout: Request timeout in seconds
        """
        self._access_token = access_token
        self._timeout = timeout
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        self._client = httpx.AsyncClient(
            timeout=timeout,
            verify=ssl_context,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
        )

    async def get_metadata(self, spreadsheet_id: str) -> SpreadsheetMetadata:
        """Fetch spreadsheet metadata from Google Sheets API."""
        url = (
            f"{API_BASE}/{spreadsheet_id}"
            "?fields=spreadsheetId,properties.title,sheets.properties"
        )
        response = await self._request(url)
        return _parse_metadata(response, spreadsheet_id)

    async def get_values(
        self, spreadsheet_id: str, sheet: SheetInfo
    ) -> list[list[CellValue]]:
        """Fetch the sheet's typed cell values from Google Sheets API.

        Reads grid data rather than the values API so that date cells can be
        told apart from plain numbers. DATE, TIME and DATE_TIME cells become
        aware UTC datetimes, interpreted in the spreadsheet's time zone.
        """
        range_a1 = urllib.parse.quote(escape_sheet_title(sheet.title), safe="")
        url = (
            f"{API_BASE}/{spreadsheet_id}"
            f"?ranges={range_a1}"
            f"&fields={urllib.parse.quote(GRID_FIELDS, safe='')}"
        )
        response = await self._request(url)
        zone = _time_zone(response.get("properties", {}).get("timeZone", ""))

        rows: list[list[CellValue]] = []
        for sheet_data in response.get("sheets", [])[:1]:
            for grid in sheet_data.get("data", [])[:1]:
                for row_data in grid.get("rowData", []):
                    rows.append(
                        [cell_value(cell, zone) for cell in row_data.get("values", [])]
                    )
        return rows

    async def _request(self, url: str) -> dict[str, Any]:
        """Make an authenticated GET request."""
        try:
            response = await self._client.get(url)
            response.raise_for_status()
            result: dict[str, Any] = response.json()
            return result
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 401:
                raise AuthenticationError("Invalid or expired access token") from e
            if status == 403:
                raise AuthenticationError(
                    "Access denied. Check your scopes and permissions."
                ) from e
            if status == 404:
                raise NotFoundError(
                    "Spreadsheet not found. Check the ID and sharing permissions."
                ) from e
            body = e.response.text
            raise APIError(f"API error ({status}): {body}", status_code=status) from e
        except httpx.RequestError as e:
            raise TransportError(f"Network error: {e}") from e

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


class LocalFileTransport(Transport):
    """Test transport that reads from local golden files.

    Expected directory structure:
        golden_dir/
            <spreadsheet_id>/
                metadata.json   (Sheets API spreadsheet resource)
                values.json     ({"sheets": {<title>: [[...], ...]}})
    """

    def __init__(self, golden_dir: Path) -> None:
        """Initialize the transport.

        Args:
            golden_dir: Directory containing golden test files
        """
        self._golden_dir = golden_dir

    def _read(self, spreadsheet_id: str, name: str) -> dict[str, Any]:
        path = self._golden_dir / spreadsheet_id / name
        if not path.exists():
            raise NotFoundError(f"Golden file not found: {path}")
        data: dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
        return data

    async def get_metadata(self, spreadsheet_id: str) -> SpreadsheetMetadata:
        """Read metadata from local file."""
        return _parse_metadata(self._read(spreadsheet_id, "metadata.json"), spreadsheet_id)

    async def get_values(
        self, spreadsheet_id: str, sheet: SheetInfo
    ) -> list[list[CellValue]]:
        """Read the sheet's values from local file."""
        sheets = self._read(spreadsheet_id, "values.json").get("sheets", {})
        values: list[list[CellValue]] = sheets.get(sheet.title, [])
        return values

    async def close(self) -> None:
        """No-op for local file transport."""
        pass


def _parse_metadata(response: dict[str, Any], spreadsheet_id: str) -> SpreadsheetMetadata:
    sheets: list[SheetInfo] = []
    for position, sheet in enumerate(response.get("sheets", [])):
        props = sheet.get("properties", {})
        sheets.append(
            SheetInfo(
                sheet_id=props.get("sheetId", 0),
                title=props.get("title", "Sheet1"),
                index=props.get("index", position),
            )
        )
    sheets.sort(key=lambda s: s.index)
    return SpreadsheetMetadata(
        spreadsheet_id=response.get("spreadsheetId", spreadsheet_id),
        title=response.get("properties", {}).get("title", ""),
        sheets=tuple(sheets),
    )


def pad_rows(rows: list[list[CellValue]]) -> list[list[CellValue]]:
    """Pad rows with blank strings to the width of the widest row.

    Grid data omits trailing empty cells and golden files may hold null
    for empty cells; both become "".
    """
    width = max((len(row) for row in rows), default=0)
    return [
        ["" if cell is None else cell for cell in row] + [""] * (width - len(row))
        for row in rows
    ]


def escape_sheet_title(title: str) -> str:
    """Escape sheet title for use in A1 notation ranges.

    Sheet names containing spaces, special characters, or starting with
    digits need to be wrapped in single quotes.
    """
    needs_quoting = (
        " " in title
        or "'" in title
        or "!" in title
        or ":" in title
        or (len(title) > 0 and title[0].isdigit())
    )
    if needs_quoting:
        escaped = title.replace("'", "''")
        return f"'{escaped}'"
    return title


def _time_zone(name: str) -> tzinfo:
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown spreadsheet time zone {!r}, using UTC", name)
        return timezone.utc


def serial_to_datetime(serial: float, zone: tzinfo) -> datetime:
    """Convert a Sheets serial day number to an aware UTC datetime.

    The serial counts days from 1899-12-30 in the spreadsheet's local time.
    """
    local = SHEETS_EPOCH.replace(tzinfo=None) + timedelta(
        milliseconds=round(serial * 86_400_000)
    )
    return local.replace(tzinfo=zone).astimezone(timezone.utc)


def cell_value(cell: dict[str, Any], zone: tzinfo = timezone.utc) -> CellValue:
    """Extract the typed value of a CellData object.

    Empty cells give "". Error cells give their displayed text (e.g. #N/A).
    """
    ev = cell.get("effectiveValue")
    if not ev:
        return ""
    if "errorValue" in ev:
        return str(cell.get("formattedValue") or "#ERROR!")
    if "boolValue" in ev:
        return bool(ev["boolValue"])
    if "numberValue" in ev:
        number: float = ev["numberValue"]
        number_type = (
            cell.get("effectiveFormat", {}).get("numberFormat", {}).get("type")
        )
        if number_type in DATE_TYPES:
            return serial_to_datetime(number, zone)
        return number
    if "stringValue" in ev:
        return str(ev["stringValue"])
    return ""
