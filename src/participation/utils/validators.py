"""Input validation helpers for operator-entered values.

Functions:
- parse_date(text) -> date: Parse a YYYY-MM-DD day
- parse_boundary(text) -> datetime: Parse a summary boundary (date or datetime)
- parse_change(text) -> (bool, int): Parse an `ID=yes|no` correction
- resolve_student_name(query, names) -> str: Resolve a name prefix to one student
"""

from __future__ import annotations

from datetime import date, datetime

from participation.errors import (
    AmbiguousStudentNameError,
    ParseError,
    StudentNotFoundError,
)

_TRUE_WORDS = {"y", "yes", "true", "t", "1", "ok"}
_FALSE_WORDS = {"n", "no", "false", "f", "0"}


def parse_date(text: str) -> date:
    """Parse a calendar day in ISO format.

    Raises:
        ParseError: If text is not YYYY-MM-DD
    """
    try:
        return datetime.strptime(text.strip(), "%Y-%m-%d").date()
    except ValueError as e:
        raise ParseError(f"Invalid date '{text}' (expected YYYY-MM-DD)") from e


def parse_boundary(value: str | date | datetime) -> datetime:
    """Parse a summary boundary into an aware local datetime.

    A bare date means local midnight at the start of that day.

    Raises:
        ParseError: If the value is not an ISO date or datetime
    """
    if isinstance(value, datetime):
        return value.astimezone()
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day).astimezone()
    try:
        return datetime.fromisoformat(str(value).strip()).astimezone()
    except ValueError as e:
        raise ParseError(f"Invalid boundary '{value}'") from e


def parse_bool(text: str) -> bool:
    """Parse a yes/no answer.

    Raises:
        ParseError: If text is not a recognized yes/no word
    """
    word = text.strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise ParseError(f"Expected yes or no, got '{text}'")


def parse_change(text: str) -> tuple[bool, int]:
    """Parse a correction of the form `ID=yes` or `ID=no`.

    Returns:
        (satisfactory, event_id)

    Raises:
        ParseError: If the format is wrong
    """
    event_part, sep, flag_part = text.partition("=")
    if not sep:
        raise ParseError(f"Invalid change '{text}' (expected ID=yes|no)")
    try:
        event_id = int(event_part.strip())
    except ValueError as e:
        raise ParseError(f"Invalid event id in '{text}'") from e
    return parse_bool(flag_part), event_id


def resolve_student_name(query: str, names: list[str]) -> str:
    """Resolve a name or name prefix to a unique student name.

    Matching is exact first, then case-insensitive prefix on the full name
    or on any word of it.

    Args:
        query: Full name or prefix (e.g., "ali" or "Alice Smith")
        names: All candidate student names

    Returns:
        The unique matching name

    Raises:
        StudentNotFoundError: If no names match
        AmbiguousStudentNameError: If more than one name matches
    """
    # Exact match first
    if query in names:
        return query

    needle = query.strip().lower()
    if not needle:
        raise StudentNotFoundError(query)

    matches = [
        n
        for n in names
        if n.lower().startswith(needle)
        or any(word.startswith(needle) for word in n.lower().split())
    ]

    if len(matches) == 0:
        raise StudentNotFoundError(query)
    elif len(matches) == 1:
        return matches[0]
    else:
        raise AmbiguousStudentNameError(query, matches)
