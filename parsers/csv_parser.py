"""
CSV parser for bulk catalog uploads.

Turns raw upload bytes into header-keyed string records. Enforces a row
ceiling and a byte ceiling: input beyond either is cut off and flagged as
truncated rather than rejected, so the first part of a large file is
still usable.
"""

from dataclasses import dataclass, field
from io import StringIO
from typing import Optional
import structlog

import pandas as pd

from exceptions import MalformedInputError

logger = structlog.get_logger(__name__)

DEFAULT_DELIMITER = ","

# Tried in order; cp1252 covers spreadsheets exported on Windows
ENCODINGS = ("utf-8-sig", "cp1252")


@dataclass
class ParsedCSV:
    """Result of parsing an uploaded CSV file."""
    headers: list[str] = field(default_factory=list)
    records: list[dict[str, str]] = field(default_factory=list)
    total_parsed: int = 0   # data rows read before the row ceiling was applied
    truncated: bool = False
    byte_size: int = 0

    @property
    def total_rows(self) -> int:
        """Rows kept for staging."""
        return len(self.records)


def parse_catalog_csv(
    content: bytes,
    max_rows: int,
    max_bytes: int,
    delimiter: str = DEFAULT_DELIMITER,
) -> ParsedCSV:
    """
    Parse an uploaded CSV file.

    The first row is the header. Duplicate header names stay separate
    columns: later copies are suffixed by position ("Title", "Title.1").
    Blank header cells are named "Column N". Cells are trimmed; rows with
    every cell empty are dropped; short rows are padded with empty cells
    and extra trailing cells are discarded.

    Args:
        content: Raw file bytes
        max_rows: Row ceiling; rows beyond it are dropped and truncated is set
        max_bytes: Byte ceiling; the file is cut at the last line break
                   before it and truncated is set
        delimiter: Field separator

    Returns:
        ParsedCSV with headers in file order and one record per data row

    Raises:
        MalformedInputError: If the file is empty, cannot be decoded, cannot
                             be read as delimited text or has no data rows
    """
    byte_size = len(content or b"")
    logger.info("parsing_csv", byte_size=byte_size, max_rows=max_rows, max_bytes=max_bytes)

    if not content or not content.strip():
        raise MalformedInputError("File is empty")

    truncated = False
    if byte_size > max_bytes:
        if content[max_bytes:].strip(b"\r\n"):
            content = _cut_at_line_break(content, max_bytes)
            truncated = True
            logger.warning("csv_byte_ceiling_reached", byte_size=byte_size, max_bytes=max_bytes)
        else:
            # Only trailing line breaks lie past the ceiling
            content = content[:max_bytes]

    text = _decode(content)

    try:
        width = _header_width(text, delimiter)
        frame = pd.read_csv(
            StringIO(text),
            sep=delimiter,
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            engine="python",
            on_bad_lines=lambda fields: fields[:width],
        )
    except Exception as e:
        logger.error("csv_read_failed", error=str(e))
        raise MalformedInputError(
            message="File could not be read as comma-separated text",
            details={"original_error": str(e)}
        )

    frame = frame.fillna("")
    frame = frame.apply(lambda column: column.astype(str).str.strip())

    headers = _dedupe_headers(list(frame.iloc[0]))
    data = frame.iloc[1:]
    data = data[(data != "").any(axis=1)]

    if data.empty:
        raise MalformedInputError("File has a header row but no data rows")

    total_parsed = len(data)
    if total_parsed > max_rows:
        data = data.iloc[:max_rows]
        truncated = True
        logger.warning("csv_row_ceiling_reached", total_parsed=total_parsed, max_rows=max_rows)

    records = [
        dict(zip(headers, values))
        for values in data.itertuples(index=False, name=None)
    ]

    result = ParsedCSV(
        headers=headers,
        records=records,
        total_parsed=total_parsed,
        truncated=truncated,
        byte_size=byte_size,
    )

    logger.info(
        "csv_parsed",
        columns=len(headers),
        total_rows=result.total_rows,
        total_parsed=total_parsed,
        truncated=truncated
    )

    return result


# ===================
# HELPER FUNCTIONS
# ===================

def _cut_at_line_break(content: bytes, max_bytes: int) -> bytes:
    """Keep whole lines only, up to max_bytes."""
    head = content[:max_bytes]
    if content[max_bytes:max_bytes + 1] == b"\n":
        # The last line ends exactly at the ceiling
        return head
    cut = head.rfind(b"\n")
    if cut <= 0:
        raise MalformedInputError(
            "First line exceeds the maximum file size",
            details={"max_bytes": max_bytes}
        )
    return head[: cut + 1]


def _decode(content: bytes) -> str:
    """Decode upload bytes, rejecting binary files."""
    if b"\x00" in content:
        raise MalformedInputError("File is not a text file")

    last_error: Optional[Exception] = None
    for encoding in ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError as e:
            last_error = e
            continue

    raise MalformedInputError(
        "File encoding is not supported (expected UTF-8)",
        details={"original_error": str(last_error)}
    )


def _header_width(text: str, delimiter: str) -> int:
    """Count header columns so over-long data rows can be clipped."""
    header = pd.read_csv(
        StringIO(text),
        sep=delimiter,
        header=None,
        nrows=1,
        dtype=str,
        keep_default_na=False,
        engine="python",
    )
    return header.shape[1]


def _dedupe_headers(raw_headers: list[str]) -> list[str]:
    """Name blank headers and suffix repeated ones by occurrence."""
    headers: list[str] = []
    seen: dict[str, int] = {}
    for position, raw in enumerate(raw_headers, start=1):
        name = raw or f"Column {position}"
        candidate = name
        while candidate in seen:
            seen[name] += 1
            candidate = f"{name}.{seen[name]}"
        seen.setdefault(candidate, 0)
        headers.append(candidate)
    return headers
