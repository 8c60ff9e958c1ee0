"""Roster file reader.

Reads the tab-delimited roster export from the course management system.
Columns: last name, first name, username, external id (extra columns ignored).
The first line is a header row. The export is UTF-16 LE by default; a byte
order mark, when present, decides the encoding instead.
"""

from __future__ import annotations

import codecs
import csv
import io
from pathlib import Path

import structlog

from participation.errors import ParseError
from participation.models import RosterEntry

logger = structlog.get_logger(__name__)

DEFAULT_ENCODING = "utf-16-le"

_BOMS = (
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
)


def _detect_encoding(raw: bytes, fallback: str) -> str:
    for bom, encoding in _BOMS:
        if raw.startswith(bom):
            return encoding
    return fallback


def decode_roster(raw: bytes, encoding: str = DEFAULT_ENCODING) -> str:
    """Decode roster bytes to text.

    Raises:
        ParseError: If the bytes are not valid in the detected encoding
    """
    detected = _detect_encoding(raw, encoding)
    try:
        return raw.decode(detected)
    except (UnicodeDecodeError, LookupError) as e:
        raise ParseError(f"Cannot decode roster as {detected}: {e}") from e


def parse_roster(text: str, has_header: bool = True) -> list[RosterEntry]:
    """Parse decoded roster text into entries, in file order.

    Rows with fewer than four fields, or with any of the four empty,
    are skipped.
    """
    entries: list[RosterEntry] = []
    skipped = 0
    reader = csv.reader(io.StringIO(text), delimiter="\t")

    try:
        for line_no, row in enumerate(reader, start=1):
            if has_header and line_no == 1:
                continue
            fields = [field.strip() for field in row]
            if len(fields) < 4 or not all(fields[:4]):
                if any(fields):
                    skipped += 1
                continue
            last_name, first_name, username, external_id = fields[:4]
            entries.append(
                RosterEntry(
                    external_id=external_id,
                    name=f"{first_name} {last_name}",
                    username=username,
                )
            )
    except csv.Error as e:
        raise ParseError(f"Malformed roster: {e}") from e

    if skipped:
        logger.warning("roster.rows_skipped", count=skipped)
    return entries


def read_roster(
    path: Path,
    encoding: str = DEFAULT_ENCODING,
    has_header: bool = True,
) -> list[RosterEntry]:
    """Read and parse a roster file.

    Args:
        path: Roster file path
        encoding: Encoding used when the file has no byte order mark
        has_header: Whether the first line is a header row

    Raises:
        ParseError: If the file cannot be read, decoded or parsed
    """
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise ParseError(f"Cannot read roster {path}: {e}") from e

    entries = parse_roster(decode_roster(raw, encoding), has_header=has_header)
    logger.info("roster.read", path=str(path), entries=len(entries))
    return entries
