"""Row extraction for sheetpublish.

Turns the raw values of a sheet into header-keyed records, optionally keeping
only rows changed since the last publish, and builds the JSON envelope and
the object key it is stored under.

Row 0 of a snapshot is the header row. Columns whose header cell is blank are
left out of every record. Blank string cells become ``None`` so that "no
value" is not confused with an empty string.

Example:
    >>> rows = [["Name", "", "Age"], ["Ada", "x", "30"], ["", "", ""]]
    >>> extract_records(rows)
    [{'Name': 'Ada', 'Age': '30'}]
"""

from __future__ import annotations

import json
import math
from collections.abc import Sequence
from datetime import date, datetime, timedelta, timezone
from typing import Any, Union

CellValue = Union[str, int, float, bool, date, datetime, None]
Row = Sequence[CellValue]
Record = dict[str, CellValue]

# Day zero of Google Sheets serial date numbers
SHEETS_EPOCH = datetime(1899, 12, 30, tzinfo=timezone.utc)

# Formats tried after ISO-8601 for string timestamps
_FALLBACK_FORMATS = (
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d",
)


def _is_blank(value: CellValue) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def is_blank_row(row: Row) -> bool:
    """Return True if every cell of the row is an empty string."""
    return all(_is_blank(cell) for cell in row)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Interpret a cell or stored value as an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), dates (midnight UTC),
    ISO-8601 strings, a few common spreadsheet date formats and Google
    Sheets serial day numbers. Returns None for blanks, booleans and
    anything that cannot be parsed.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return SHEETS_EPOCH + timedelta(days=value)
        except OverflowError:
            return None
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return _as_utc(datetime.fromisoformat(text))
    except ValueError:
        pass
    for fmt in _FALLBACK_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def format_timestamp(value: datetime) -> str:
    """Format as ISO-8601 UTC with milliseconds, e.g. 2024-01-01T00:00:00.000Z."""
    return _as_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_key_timestamp(value: datetime) -> str:
    """Format for object keys: yyyy-MM-dd'T'HH-mm-ss-SSS in UTC."""
    utc = _as_utc(value)
    return f"{utc:%Y-%m-%dT%H-%M-%S}-{utc.microsecond // 1000:03d}"


def select_rows(
    rows: Sequence[Row],
    *,
    updated_at_column: int | None = None,
    since: datetime | None = None,
) -> list[Row]:
    """Keep the header row and every data row worth publishing.

    Entirely blank data rows are dropped. When both ``updated_at_column`` and
    ``since`` are given, a data row is kept only if its value in that column
    is a timestamp strictly later than ``since``.
    """
    if not rows:
        return []

    header, *data_rows = rows
    selected: list[Row] = [header]
    for row in data_rows:
        if is_blank_row(row):
            continue
        if updated_at_column is not None and since is not None:
            value = row[updated_at_column] if updated_at_column < len(row) else ""
            updated_at = parse_timestamp(value)
            if updated_at is None or updated_at <= since:
                continue
        selected.append(row)
    return selected


def _header_name(value: CellValue) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def extract_records(
    rows: Sequence[Row],
    *,
    updated_at_column: int | None = None,
    since: datetime | None = None,
) -> list[Record]:
    """Build one record per retained data row, keyed by header name.

    Args:
        rows: Sheet snapshot; row 0 is the header row.
        updated_at_column: Zero-based index of the "last updated" column.
        since: Exclusive lower bound for the "last updated" value.

    Returns:
        Records in row order. Blank string cells map to None; every other
        value (0, False, dates) is passed through unchanged.
    """
    selected = select_rows(rows, updated_at_column=updated_at_column, since=since)
    if not selected:
        return []

    header = selected[0]
    columns = [
        (index, _header_name(name))
        for index, name in enumerate(header)
        if not _is_blank(name)
    ]

    records: list[Record] = []
    for row in selected[1:]:
        record: Record = {}
        for index, name in columns:
            value = row[index] if index < len(row) else ""
            record[name] = None if _is_blank(value) else value
        records.append(record)
    return records


def build_envelope(
    records: list[Record],
    *,
    track_changes: bool = False,
    records_since: str | None = None,
) -> dict[str, Any]:
    """Assemble the top-level JSON object.

    ``recordsSince`` is present only with change tracking, and is None when
    nothing has been published before.
    """
    envelope: dict[str, Any] = {"data": records}
    if track_changes:
        envelope["recordsSince"] = records_since
    return envelope


def object_key(
    document_id: str,
    *,
    path: str = "",
    published_at: datetime | None = None,
) -> str:
    """Build the object key: {path/}{documentId}{-timestamp}.json.

    The timestamp suffix is added only when ``published_at`` is given, which
    is the case in change-tracking mode.
    """
    prefix = path.strip("/")
    key = f"{prefix}/{document_id}" if prefix else document_id
    if published_at is not None:
        key += "-" + format_key_timestamp(published_at)
    return key + ".json"


def _json_default(value: Any) -> str:
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def serialize_envelope(envelope: dict[str, Any]) -> bytes:
    """Encode the envelope as compact UTF-8 JSON."""
    return json.dumps(
        envelope,
        default=_json_default,
        ensure_ascii=False,
        separators=(",", ":"),
    ).encode("utf-8")
