"""
CSV Reader

Turns an uploaded file into (row_number, {field: value}) pairs.

The dialect is deliberately small:
- rows end at \\r\\n, \\r or \\n outside double quotes; blank rows are skipped
- the delimiter is a tab if the header row has one, otherwise a comma
- a double quote toggles quoting and is itself dropped
- every value is trimmed; missing trailing cells read as ""

Header names are normalized (lowercase, no whitespace, underscores or
hyphens) and then mapped through an importer-specific alias table, so
"Txn Date", "txn_date" and "TXN-DATE" all land on the same field.
"""

import re
from typing import Optional

import structlog

from fintrack.imports.errors import FileTooLargeError, InvalidFileError


logger = structlog.get_logger(__name__)

_HEADER_JUNK = re.compile(r"[\s_-]+")

RawRow = tuple[int, dict[str, str]]


def check_upload(filename: str, size_bytes: int, max_bytes: int) -> None:
    """
    Reject uploads that are not CSV files or are too large.

    Raises:
        InvalidFileError: If the name does not end in .csv
        FileTooLargeError: If the file is over max_bytes
    """
    if not filename.lower().endswith(".csv"):
        raise InvalidFileError(f"Please select a CSV file (got '{filename}')")
    if size_bytes > max_bytes:
        raise FileTooLargeError(
            f"File is {size_bytes / (1024 * 1024):.1f}MB; "
            f"the limit is {max_bytes / (1024 * 1024):.0f}MB"
        )


def decode_content(raw: bytes) -> str:
    """UTF-8 text, with a leading byte-order mark dropped."""
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise InvalidFileError("File is not valid UTF-8 text") from e


def split_rows(content: str) -> list[str]:
    """Split into rows, keeping line breaks that sit inside quotes."""
    rows = []
    current: list[str] = []
    in_quotes = False
    i = 0

    while i < len(content):
        char = content[i]
        if char == '"':
            in_quotes = not in_quotes
            current.append(char)
        elif char in "\r\n" and not in_quotes:
            if char == "\r" and content[i + 1:i + 2] == "\n":
                i += 1
            row = "".join(current)
            if row.strip():
                rows.append(row)
            current = []
        else:
            current.append(char)
        i += 1

    row = "".join(current)
    if row.strip():
        rows.append(row)
    return rows


def detect_delimiter(header_row: str) -> str:
    return "\t" if "\t" in header_row else ","


def parse_line(line: str, delimiter: str = ",") -> list[str]:
    """Split one row into cells. Quotes group text and are not kept."""
    cells = []
    current: list[str] = []
    in_quotes = False

    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            cells.append("".join(current))
            current = []
        else:
            current.append(char)
    cells.append("".join(current))
    return cells


def normalize_header(header: str, aliases: Optional[dict[str, str]] = None) -> str:
    """
    Canonical field name for a header cell.

    Unknown headers come back normalized but otherwise unchanged.
    """
    key = _HEADER_JUNK.sub("", header.strip().lower())
    if aliases:
        return aliases.get(key, key)
    return key


def read_rows(
    content: str,
    aliases: dict[str, str],
    max_rows: Optional[int] = None,
) -> list[RawRow]:
    """
    Header-mapped data rows of a CSV document.

    Row numbers count non-blank rows from 1, so the first data row is 2.
    Fewer than two rows means there is nothing to import: [] is returned.

    Raises:
        FileTooLargeError: If there are more than max_rows data rows
    """
    rows = split_rows(content.strip())
    if len(rows) < 2:
        return []

    if max_rows is not None and len(rows) - 1 > max_rows:
        raise FileTooLargeError(
            f"File has {len(rows) - 1} rows; at most {max_rows} can be imported at once"
        )

    delimiter = detect_delimiter(rows[0])
    headers = [normalize_header(h, aliases) for h in parse_line(rows[0], delimiter)]

    records = []
    for index, row in enumerate(rows[1:], start=1):
        cells = parse_line(row, delimiter)
        values = {
            header: (cells[pos].strip() if pos < len(cells) else "")
            for pos, header in enumerate(headers)
        }
        records.append((index + 1, values))

    logger.debug(
        "csv_rows_read",
        row_count=len(records),
        delimiter="tab" if delimiter == "\t" else "comma",
        headers=headers,
    )
    return records


def read_upload(
    filename: str,
    raw: bytes,
    aliases: dict[str, str],
    max_bytes: int,
    max_rows: Optional[int] = None,
) -> list[RawRow]:
    """check_upload + decode_content + read_rows in one call."""
    check_upload(filename, len(raw), max_bytes)
    return read_rows(decode_content(raw), aliases, max_rows)
