"""Participation ledger.

Responsibilities:
- Record events against a student and a category
- Retrieve a student's events for one local calendar day
- Apply batched corrections to the satisfactory flag
- Bucket satisfactory events into three grading periods
- Rebuild the cached all-time points per student

Period boundaries are always supplied by the caller.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable

import structlog

from participation.db.database import Gateway
from participation.errors import PartialApplyError, PersistenceError, ValidationError
from participation.models import EventView, SummaryEntry, SummaryRow

logger = structlog.get_logger(__name__)

Boundaries = tuple[datetime, datetime, datetime]


class Ledger:
    """Records, corrects and aggregates participation events."""

    def __init__(self, gateway: Gateway):
        self._gateway = gateway

    def record(
        self,
        student_name: str,
        category_name: str,
        satisfactory: bool,
        *,
        strict: bool = False,
    ) -> int:
        """Record one event.

        Args:
            student_name: Full student name as stored
            category_name: Category name
            satisfactory: Whether the participation earns a point
            strict: Raise instead of returning 0 when nothing was written

        Returns:
            Rows written. 0 means the student or the category is unknown.

        Raises:
            ValidationError: If strict and nothing was written
            PersistenceError: On store failure
        """
        written = self._gateway.insert_event(student_name, category_name, satisfactory)
        if written == 0:
            logger.warning(
                "ledger.record_unmatched",
                student=student_name,
                category=category_name,
            )
            if strict:
                raise ValidationError(
                    f"Nothing recorded for student '{student_name}' "
                    f"in category '{category_name}'"
                )
        else:
            logger.debug(
                "ledger.recorded",
                student=student_name,
                category=category_name,
                satisfactory=satisfactory,
            )
        return written

    def retrieve_events(self, student_name: str, day: date) -> list[EventView]:
        """Events for a student created on the given local day, oldest first."""
        return self._gateway.query_events_for_student_on_date(student_name, day)

    def change_events(self, changes: Iterable[tuple[bool, int]]) -> None:
        """Apply `(satisfactory, event_id)` corrections in order.

        Raises:
            PartialApplyError: On the first failure. Changes before it remain
                applied and the rest are not attempted.
        """
        applied = 0
        for satisfactory, event_id in changes:
            try:
                written = self._gateway.update_event_satisfactory(event_id, satisfactory)
            except PersistenceError as e:
                logger.warning(
                    "ledger.change_aborted", applied=applied, event_id=event_id
                )
                raise PartialApplyError(applied, event_id, e) from e
            if written == 0:
                logger.warning("ledger.change_missing_event", event_id=event_id)
            applied += 1
        logger.info("ledger.changes_applied", applied=applied)

    def summarize(self, boundaries: Boundaries) -> list[SummaryRow]:
        """Per-period satisfactory counts for every enrolled student.

        Periods are `t < t1`, `t1 <= t < t2` and `t2 <= t < t3`.
        Events at or after `t3` are not counted.

        Raises:
            ValidationError: If the boundaries are not in order
        """
        t1, t2, t3 = boundaries
        if not (t1 <= t2 <= t3):
            raise ValidationError(
                f"Summary boundaries out of order: {t1}, {t2}, {t3}"
            )
        return self._gateway.query_enrolled_summary_counts((t1, t2, t3))

    def rebuild_summary_cache(self) -> datetime:
        """Recompute all-time points for every student. Safe to repeat."""
        return self._gateway.rebuild_summary_cache()

    def cached_points(self) -> list[SummaryEntry]:
        return self._gateway.query_summary_cache()

    def summary_last_updated(self) -> datetime | None:
        return self._gateway.query_summary_last_updated()
