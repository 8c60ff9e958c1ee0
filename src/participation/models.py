"""Typed records exchanged with the persistence gateway.

Rows are converted into these dataclasses once, inside the gateway.
Everything above the gateway works with attributes, never with row indexes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

DEFAULT_CATEGORIES = (
    "comment",
    "error",
    "homework",
    "practice",
    "question",
    "review",
)


class Status(str, Enum):
    """Enrollment status of a student."""

    ENROLLED = "enrolled"
    DROPPED = "dropped"


@dataclass(frozen=True)
class Student:
    """Student record from database."""

    internal_id: int
    external_id: str
    name: str
    username: str
    status: Status
    first_entered: datetime
    last_updated: datetime

    @property
    def is_enrolled(self) -> bool:
        return self.status is Status.ENROLLED


@dataclass(frozen=True)
class Category:
    """Category record from database."""

    internal_id: int
    name: str
    first_entered: datetime


@dataclass(frozen=True)
class EventView:
    """One recorded event as shown to the operator."""

    id: int
    category_name: str
    timestamp: datetime
    satisfactory: bool


@dataclass(frozen=True)
class SummaryRow:
    """Satisfactory-event counts for one enrolled student over three periods."""

    username: str
    period1: int
    period2: int
    period3: int

    @property
    def periods(self) -> tuple[int, int, int]:
        return (self.period1, self.period2, self.period3)


@dataclass(frozen=True)
class SummaryEntry:
    """Cached all-time points for one student."""

    student_id: int
    username: str
    points: int


@dataclass(frozen=True)
class RosterEntry:
    """A student as listed in the externally supplied roster."""

    external_id: str
    name: str
    username: str


@dataclass
class ReconcileStats:
    """Outcome of one roster synchronization."""

    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    dropped: int = 0

    @property
    def writes(self) -> int:
        """Number of rows actually written."""
        return self.inserted + self.updated + self.dropped
