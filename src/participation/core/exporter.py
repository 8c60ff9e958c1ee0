"""Summary export for the gradebook upload.

Writes a tab-separated table: a quoted header row whose period columns embed
the highest score seen in that period, then one row per student.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence, TextIO

import structlog

from participation.models import SummaryRow

logger = structlog.get_logger(__name__)

DEFAULT_HEADERS = (
    "Participation 1 [Total Pts: {max} Score] |1576192",
    "Participation 2 [Total Pts: {max} Score] |1576193",
    "Participation 3 [Total Pts: {max} Score] |1576194",
)


def period_maxima(rows: Sequence[SummaryRow]) -> tuple[int, int, int]:
    """Highest count in each period, 0 when there are no rows."""
    if not rows:
        return (0, 0, 0)
    return (
        max(r.period1 for r in rows),
        max(r.period2 for r in rows),
        max(r.period3 for r in rows),
    )


def export_summary(
    rows: Sequence[SummaryRow],
    stream: TextIO,
    headers: Sequence[str] = DEFAULT_HEADERS,
) -> None:
    """Write summary rows as a gradebook table.

    Args:
        rows: Summary rows to write
        stream: Text stream to write to
        headers: Three column templates, each formatted with `max`
    """
    if len(headers) != 3:
        raise ValueError(f"Expected 3 period headers, got {len(headers)}")

    titles = [
        template.format(max=maximum)
        for template, maximum in zip(headers, period_maxima(rows))
    ]
    stream.write("\t".join(f'"{t}"' for t in ["Username", *titles]) + "\n")
    for row in rows:
        stream.write(
            f'"{row.username}"\t{row.period1}\t{row.period2}\t{row.period3}\n'
        )


def write_summary_file(
    rows: Sequence[SummaryRow],
    path: Path,
    headers: Sequence[str] = DEFAULT_HEADERS,
) -> None:
    """Export summary rows to a file, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        export_summary(rows, f, headers)
    logger.info("summary.exported", path=str(path), rows=len(rows))
