"""access_governance.csv_upload

Turns an uploaded CSV document (or its JSON equivalent) into UploadRow
records.

CSV format (comma-delimited, header row required, column order free):
    user_email,system_name,instance_name,access_tier_name,notes

Required:  user_email, system_name, access_tier_name
Optional:  instance_name (blank = all instances), notes

Parsing rules:
  - Blank lines are dropped before numbering; the first remaining line is the
    header (row 1), so data rows are numbered from 2.
  - Double quotes protect commas inside a value; "" is a literal quote.
    Quotes never span lines.
  - Header cells are matched case-insensitively. Unknown columns are ignored
    with a warning; a missing column reads as "" on every row and is left for
    row schema validation to report.
  - Malformed quoting never raises.  Values come out best-effort and the row
    schema check rejects them.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass, field
from typing import Any

from access_governance.records import UploadRow

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

REQUIRED_COLUMNS = ("user_email", "system_name", "access_tier_name")
ALL_COLUMNS = ("user_email", "system_name", "instance_name", "access_tier_name", "notes")

FIRST_DATA_ROW = 2

EMPTY_FILE_ERROR = "CSV file is empty"
NO_DATA_ROWS_ERROR = "CSV file has no data rows"
EMPTY_JSON_ERROR = "At least one row is required"

_TEMPLATE_EXAMPLE_ROW = (
    "john.doe@example.com", "GitHub", "Production", "Admin", "Approved by manager",
)


# ---------------------------------------------------------------------------
# Exceptions / results
# ---------------------------------------------------------------------------

class UploadFormatError(ValueError):
    """Raised when a JSON upload payload does not have the row-array shape."""


@dataclass
class CsvParseResult:
    rows: list[UploadRow] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Line splitting
# ---------------------------------------------------------------------------

def split_csv_line(line: str) -> list[str]:
    """Split one CSV line into trimmed values, honouring double quotes."""
    reader = csv.reader([line], skipinitialspace=True, strict=False)
    try:
        tokens = next(reader)
    except (StopIteration, csv.Error):
        return [line.strip()]
    return [t.strip() for t in tokens]


def _non_blank_lines(text: str) -> list[str]:
    if text.startswith("\ufeff"):
        text = text[1:]
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return [line.strip() for line in text.split("\n") if line.strip()]


def _cell(values: list[str], index: int | None) -> str:
    if index is None or index >= len(values):
        return ""
    return values[index]


# ---------------------------------------------------------------------------
# CSV transport
# ---------------------------------------------------------------------------

def parse_csv(text: str) -> CsvParseResult:
    """Parse CSV text into UploadRows.

    Returns a CsvParseResult whose `errors` is non-empty only for structural
    problems (empty file, header without data).  Row-level problems are never
    reported here.
    """
    lines = _non_blank_lines(text or "")
    if not lines:
        return CsvParseResult(errors=[EMPTY_FILE_ERROR])

    headers = [h.lower() for h in split_csv_line(lines[0])]
    column_index: dict[str, int] = {}
    for idx, header in enumerate(headers):
        if header in ALL_COLUMNS and header not in column_index:
            column_index[header] = idx

    result = CsvParseResult()
    unknown = [h for h in headers if h and h not in ALL_COLUMNS]
    if unknown:
        result.warnings.append(
            f"Warning: Unknown columns will be ignored: {', '.join(unknown)}"
        )

    for offset, line in enumerate(lines[1:]):
        values = split_csv_line(line)
        instance = _cell(values, column_index.get("instance_name"))
        notes = _cell(values, column_index.get("notes"))
        result.rows.append(UploadRow(
            row_number=offset + FIRST_DATA_ROW,
            user_email=_cell(values, column_index.get("user_email")),
            system_name=_cell(values, column_index.get("system_name")),
            access_tier_name=_cell(values, column_index.get("access_tier_name")),
            instance_name=instance or None,
            notes=notes or None,
        ))

    if not result.rows:
        result.errors.append(NO_DATA_ROWS_ERROR)
    return result


# ---------------------------------------------------------------------------
# JSON transport
# ---------------------------------------------------------------------------

def _json_text(row_number: int, key: str, value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise UploadFormatError(f"Row {row_number}: {key} must be a string")
    if isinstance(value, str):
        return value.strip()
    return str(value)


def parse_json_rows(payload: Any) -> CsvParseResult:
    """Build UploadRows from a decoded JSON payload.

    Accepts either a bare array of row objects or {"rows": [...]}.

    Raises:
        UploadFormatError: If the payload is not an array of objects, or a
            field holds a nested object/array.
    """
    if isinstance(payload, dict) and "rows" in payload:
        payload = payload["rows"]
    if not isinstance(payload, list):
        raise UploadFormatError("Request body must be a JSON array of row objects")
    if not payload:
        return CsvParseResult(errors=[EMPTY_JSON_ERROR])

    result = CsvParseResult()
    for idx, item in enumerate(payload):
        row_number = idx + FIRST_DATA_ROW
        if not isinstance(item, dict):
            raise UploadFormatError(f"Row {row_number}: expected an object")
        instance = _json_text(row_number, "instance_name", item.get("instance_name"))
        notes = _json_text(row_number, "notes", item.get("notes"))
        result.rows.append(UploadRow(
            row_number=row_number,
            user_email=_json_text(row_number, "user_email", item.get("user_email")),
            system_name=_json_text(row_number, "system_name", item.get("system_name")),
            access_tier_name=_json_text(
                row_number, "access_tier_name", item.get("access_tier_name")
            ),
            instance_name=instance or None,
            notes=notes or None,
        ))
    return result


# ---------------------------------------------------------------------------
# Template
# ---------------------------------------------------------------------------

def csv_template() -> str:
    """Return the downloadable upload template: header plus one example row."""
    return ",".join(ALL_COLUMNS) + "\n" + ",".join(_TEMPLATE_EXAMPLE_ROW) + "\n"
