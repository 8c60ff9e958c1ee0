"""Error hierarchy for the participation tracker.

- ValidationError: input that resolves to nothing (unknown student/category,
  unordered summary boundaries, unresolvable name prefix)
- EmptyPoolError: picker constructed without students
- PersistenceError: any store failure, tagged with the failing operation
- PartialApplyError: a batch correction stopped part way through
- ParseError: malformed roster file, date, change spec or config value
"""

from __future__ import annotations


class ParticipationError(Exception):
    """Base class for all participation errors."""

    pass


class ValidationError(ParticipationError):
    """Raised when caller input does not match any stored record."""

    pass


class StudentNotFoundError(ValidationError):
    """Raised when no student name matches the given query."""

    def __init__(self, query: str):
        self.query = query
        super().__init__(f"No student matches '{query}'")


class AmbiguousStudentNameError(ValidationError):
    """Raised when a name prefix matches more than one student."""

    def __init__(self, query: str, candidates: list[str]):
        self.query = query
        self.candidates = candidates
        super().__init__(
            f"'{query}' is ambiguous. Candidates:\n"
            + "\n".join(f"  - {c}" for c in candidates)
        )


class EmptyPoolError(ParticipationError):
    """Raised when the picker has no students to draw from."""

    def __init__(self, message: str = "No active students to pick from"):
        super().__init__(message)


class PersistenceError(ParticipationError):
    """Wraps an underlying store failure.

    Attributes:
        operation: Name of the gateway operation that failed
        cause: Original exception raised by the store
    """

    def __init__(
        self,
        operation: str,
        cause: BaseException | None = None,
        message: str | None = None,
    ):
        self.operation = operation
        self.cause = cause
        if message is None:
            detail = f": {cause}" if cause is not None else ""
            message = f"{operation} failed{detail}"
        super().__init__(message)


class PartialApplyError(PersistenceError):
    """Raised when a batch of event corrections fails part way.

    Changes before the failing one stay applied; nothing is rolled back.
    """

    def __init__(self, applied: int, event_id: int, cause: PersistenceError):
        self.applied = applied
        self.event_id = event_id
        super().__init__(
            cause.operation,
            cause.cause,
            f"some changes may not have applied: {applied} applied before "
            f"event {event_id} failed ({cause})",
        )


class ParseError(ParticipationError):
    """Raised for malformed roster, date, change or config input."""

    pass
