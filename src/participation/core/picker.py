"""Fair random picker for cold-calling.

Draws students from a shuffled bag: every student comes up exactly once per
pass before the bag is reshuffled. The last student of one pass may be the
first of the next; no attempt is made to avoid that.
"""

from __future__ import annotations

import random
from typing import Sequence

import structlog

from participation.errors import EmptyPoolError
from participation.models import Student

logger = structlog.get_logger(__name__)


class FairPicker:
    """Unbounded, non-restartable sequence of students.

    Holds mutable cursor state and is not thread-safe. Build a new picker
    to pick from a refreshed student list.

    Args:
        students: Active students to pick from
        rng: Random source owned by this picker (seed it for reproducible draws)

    Raises:
        EmptyPoolError: If students is empty
    """

    def __init__(self, students: Sequence[Student], rng: random.Random | None = None):
        if not students:
            raise EmptyPoolError()
        self._students = list(students)
        self._rng = rng if rng is not None else random.Random()
        self._bag = list(range(len(self._students)))
        self._cursor = len(self._bag)
        self._passes = 0

    def __iter__(self) -> FairPicker:
        return self

    def __next__(self) -> Student:
        return self.next()

    def __len__(self) -> int:
        return len(self._students)

    @property
    def pass_number(self) -> int:
        """Number of shuffles performed so far."""
        return self._passes

    @property
    def remaining_in_pass(self) -> int:
        """Students left before the next reshuffle."""
        return len(self._bag) - self._cursor

    def next(self) -> Student:
        """Return the next student, reshuffling when the bag is exhausted."""
        if not self._bag:
            raise EmptyPoolError()
        if self._cursor >= len(self._bag):
            self._rng.shuffle(self._bag)
            self._cursor = 0
            self._passes += 1
            logger.debug("picker.reshuffled", pass_number=self._passes, size=len(self._bag))

        student = self._students[self._bag[self._cursor]]
        self._cursor += 1
        return student
