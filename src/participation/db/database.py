"""SQLite persistence gateway.

Owns the single store session used by the reconciler, the ledger and the CLI.
Every public method takes the session lock, runs its statements and commits
before returning, so each call is individually durable.

Tables are namespaced with a `<namespace>_` prefix so several class rosters
can share one database file.
"""

from __future__ import annotations

import re
import sqlite3
import threading
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
from typing import Callable, Generator, Iterator

import structlog

from participation.errors import PersistenceError
from participation.models import (
    DEFAULT_CATEGORIES,
    Category,
    EventView,
    RosterEntry,
    Status,
    Student,
    SummaryEntry,
    SummaryRow,
)

logger = structlog.get_logger(__name__)

# Default database location
DEFAULT_DB_PATH = Path("db/participation.db")
DEFAULT_NAMESPACE = "real"

_NAMESPACE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_TABLES = ("statuses", "categories", "students", "events", "summary", "metadata")

# UTC text sorts in the same order as the instants it encodes
_TS_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_db_timestamp(moment: datetime) -> str:
    """Encode a datetime for storage. Naive values are taken as local time."""
    return moment.astimezone(timezone.utc).strftime(_TS_FORMAT)


def from_db_timestamp(text: str) -> datetime:
    """Decode a stored timestamp into an aware local datetime."""
    return (
        datetime.strptime(text, _TS_FORMAT)
        .replace(tzinfo=timezone.utc)
        .astimezone()
    )


def local_day_bounds(day: date) -> tuple[datetime, datetime]:
    """Return `[day 00:00, day+1 00:00)` in local time."""
    start = datetime.combine(day, time.min).astimezone()
    end = datetime.combine(day + timedelta(days=1), time.min).astimezone()
    return start, end


def validate_namespace(namespace: str) -> str:
    """Check that a namespace is safe to use as a table prefix.

    Raises:
        ValueError: If the namespace is not a plain identifier
    """
    if not _NAMESPACE_RE.match(namespace):
        raise ValueError(f"Invalid namespace: {namespace!r}")
    return namespace


class Gateway:
    """Single-owner access point to the participation store.

    Not meant to be shared through copies: one instance, one connection,
    one lock. Callers on other threads go through the same instance.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        namespace: str = DEFAULT_NAMESPACE,
        clock: Clock | None = None,
    ):
        self._conn = conn
        self._namespace = validate_namespace(namespace)
        self._clock = clock or _utcnow
        self._lock = threading.Lock()
        self._tables = {name: f"{namespace}_{name}" for name in _TABLES}

    @property
    def namespace(self) -> str:
        return self._namespace

    def now(self) -> datetime:
        """Current time according to the gateway clock."""
        return self._clock()

    def _sql(self, template: str) -> str:
        return template.format(**self._tables)

    @contextmanager
    def _session(self, operation: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except sqlite3.Error as e:
                self._conn.rollback()
                logger.warning(
                    "gateway.operation_failed", operation=operation, error=str(e)
                )
                raise PersistenceError(operation, e) from e
            except Exception:
                self._conn.rollback()
                raise

    # =========================================================================
    # SCHEMA
    # =========================================================================

    def initialize(self) -> None:
        """Create tables and seed starting data.

        Statuses, categories and the metadata row are only seeded the first
        time a namespace is initialized. `last_opened` is stamped every time.
        """
        with self._session("initialize") as conn:
            conn.executescript(self._sql(_SCHEMA))
            stamp = to_db_timestamp(self.now())
            found = conn.execute(self._sql("SELECT db_id FROM {metadata}")).fetchone()
            if found is None:
                conn.execute(
                    self._sql(
                        "INSERT OR IGNORE INTO {metadata} "
                        "(db_id, first_created, last_opened) VALUES (1, ?, ?)"
                    ),
                    (stamp, stamp),
                )
                conn.executemany(
                    self._sql(
                        "INSERT OR IGNORE INTO {statuses} (name, first_entered) "
                        "VALUES (?, ?)"
                    ),
                    [(status.value, stamp) for status in Status],
                )
                conn.executemany(
                    self._sql(
                        "INSERT OR IGNORE INTO {categories} (name, first_entered) "
                        "VALUES (?, ?)"
                    ),
                    [(name, stamp) for name in DEFAULT_CATEGORIES],
                )
                logger.info("database.seeded", namespace=self._namespace)
            conn.execute(
                self._sql("UPDATE {metadata} SET last_opened = ? WHERE db_id = 1"),
                (stamp,),
            )

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # =========================================================================
    # STUDENTS
    # =========================================================================

    def upsert_student(
        self, entry: RosterEntry, status: Status = Status.ENROLLED
    ) -> int:
        """Insert a student or update it when any tracked field differs.

        Returns:
            Rows written: 1 on insert or change, 0 when the row already matched
        """
        with self._session("upsert_student") as conn:
            stamp = to_db_timestamp(self.now())
            cursor = conn.execute(
                self._sql(
                    """
                    INSERT INTO {students} (
                        external_id, name, username, status_id,
                        first_entered, last_updated
                    ) VALUES (
                        ?, ?, ?, (SELECT db_id FROM {statuses} WHERE name = ?), ?, ?
                    )
                    ON CONFLICT (external_id) DO UPDATE SET
                        name = excluded.name,
                        username = excluded.username,
                        status_id = excluded.status_id,
                        last_updated = excluded.last_updated
                    WHERE name != excluded.name
                        OR username != excluded.username
                        OR status_id != excluded.status_id
                    """
                ),
                (
                    entry.external_id,
                    entry.name,
                    entry.username,
                    status.value,
                    stamp,
                    stamp,
                ),
            )
        if cursor.rowcount:
            logger.debug("students.upserted", external_id=entry.external_id)
        return cursor.rowcount

    def set_student_status(self, external_id: str, status: Status) -> int:
        """Change a student's status, skipping the write if it already matches."""
        with self._session("set_student_status") as conn:
            cursor = conn.execute(
                self._sql(
                    """
                    UPDATE {students} SET
                        status_id = (SELECT db_id FROM {statuses} WHERE name = :status),
                        last_updated = :stamp
                    WHERE external_id = :external_id
                        AND status_id != (SELECT db_id FROM {statuses} WHERE name = :status)
                    """
                ),
                {
                    "status": status.value,
                    "stamp": to_db_timestamp(self.now()),
                    "external_id": external_id,
                },
            )
        if cursor.rowcount:
            logger.debug(
                "students.status_changed", external_id=external_id, status=status.value
            )
        return cursor.rowcount

    def query_all_students(self) -> list[Student]:
        """All students regardless of status."""
        with self._session("query_all_students") as conn:
            rows = conn.execute(self._sql(_STUDENT_SELECT + " ORDER BY st.name")).fetchall()
        return [_row_to_student(row) for row in rows]

    def query_active_students(self) -> list[Student]:
        """Students whose status is enrolled."""
        with self._session("query_active_students") as conn:
            rows = conn.execute(
                self._sql(_STUDENT_SELECT + " WHERE ss.name = ? ORDER BY st.name"),
                (Status.ENROLLED.value,),
            ).fetchall()
        return [_row_to_student(row) for row in rows]

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    def query_categories(self) -> list[Category]:
        with self._session("query_categories") as conn:
            rows = conn.execute(
                self._sql(
                    "SELECT db_id, name, first_entered FROM {categories} ORDER BY name"
                )
            ).fetchall()
        return [
            Category(
                internal_id=row["db_id"],
                name=row["name"],
                first_entered=from_db_timestamp(row["first_entered"]),
            )
            for row in rows
        ]

    # =========================================================================
    # EVENTS
    # =========================================================================

    def insert_event(
        self,
        student_name: str,
        category_name: str,
        satisfactory: bool,
        at: datetime | None = None,
    ) -> int:
        """Insert one event if both names resolve.

        Returns:
            1 if the event was written, 0 if the student or category is unknown
        """
        with self._session("insert_event") as conn:
            cursor = conn.execute(
                self._sql(
                    """
                    INSERT INTO {events} (student_id, category_id, first_entered, satisfactory)
                    SELECT st.db_id, c.db_id, ?, ?
                    FROM {students} AS st, {categories} AS c
                    WHERE st.name = ? AND c.name = ?
                    """
                ),
                (
                    to_db_timestamp(at or self.now()),
                    int(satisfactory),
                    student_name,
                    category_name,
                ),
            )
        return cursor.rowcount

    def update_event_satisfactory(self, event_id: int, satisfactory: bool) -> int:
        with self._session("update_event_satisfactory") as conn:
            cursor = conn.execute(
                self._sql("UPDATE {events} SET satisfactory = ? WHERE db_id = ?"),
                (int(satisfactory), event_id),
            )
        return cursor.rowcount

    def query_events_for_student_on_date(
        self, student_name: str, day: date
    ) -> list[EventView]:
        """Events for one student whose creation falls on the given local day."""
        start, end = local_day_bounds(day)
        with self._session("query_events_for_student_on_date") as conn:
            rows = conn.execute(
                self._sql(
                    """
                    SELECT ev.db_id, c.name AS category_name, ev.first_entered, ev.satisfactory
                    FROM {events} AS ev
                    JOIN {categories} AS c ON ev.category_id = c.db_id
                    JOIN {students} AS st ON ev.student_id = st.db_id
                    WHERE st.name = ?
                        AND ev.first_entered >= ?
                        AND ev.first_entered < ?
                    ORDER BY ev.first_entered, ev.db_id
                    """
                ),
                (student_name, to_db_timestamp(start), to_db_timestamp(end)),
            ).fetchall()
        return [
            EventView(
                id=row["db_id"],
                category_name=row["category_name"],
                timestamp=from_db_timestamp(row["first_entered"]),
                satisfactory=bool(row["satisfactory"]),
            )
            for row in rows
        ]

    # =========================================================================
    # SUMMARY
    # =========================================================================

    def query_enrolled_summary_counts(
        self, boundaries: tuple[datetime, datetime, datetime]
    ) -> list[SummaryRow]:
        """Satisfactory-event counts per enrolled student in three periods.

        Events at or after the third boundary fall in no period.
        """
        t1, t2, t3 = (to_db_timestamp(b) for b in boundaries)
        with self._session("query_enrolled_summary_counts") as conn:
            rows = conn.execute(
                self._sql(
                    """
                    SELECT
                        st.username,
                        COUNT(CASE WHEN ev.satisfactory = 1
                            AND ev.first_entered < :t1 THEN 1 END) AS period1,
                        COUNT(CASE WHEN ev.satisfactory = 1
                            AND ev.first_entered >= :t1
                            AND ev.first_entered < :t2 THEN 1 END) AS period2,
                        COUNT(CASE WHEN ev.satisfactory = 1
                            AND ev.first_entered >= :t2
                            AND ev.first_entered < :t3 THEN 1 END) AS period3
                    FROM {students} AS st
                    JOIN {statuses} AS ss ON st.status_id = ss.db_id
                    LEFT JOIN {events} AS ev ON ev.student_id = st.db_id
                    WHERE ss.name = :enrolled
                    GROUP BY st.db_id, st.username
                    ORDER BY st.username
                    """
                ),
                {"t1": t1, "t2": t2, "t3": t3, "enrolled": Status.ENROLLED.value},
            ).fetchall()
        return [
            SummaryRow(
                username=row["username"],
                period1=row["period1"],
                period2=row["period2"],
                period3=row["period3"],
            )
            for row in rows
        ]

    def rebuild_summary_cache(self) -> datetime:
        """Overwrite every student's cached points with an all-time count.

        Returns:
            The timestamp stamped into metadata as `summary_last_updated`
        """
        stamped = self.now()
        with self._session("rebuild_summary_cache") as conn:
            # WHERE 1 keeps the upsert ON from parsing as a join constraint
            conn.execute(
                self._sql(
                    """
                    INSERT INTO {summary} (student_id, points)
                    SELECT st.db_id, COUNT(CASE WHEN ev.satisfactory = 1 THEN 1 END)
                    FROM {students} AS st
                    LEFT JOIN {events} AS ev ON ev.student_id = st.db_id
                    WHERE 1
                    GROUP BY st.db_id
                    ON CONFLICT (student_id) DO UPDATE SET points = excluded.points
                    """
                )
            )
            conn.execute(
                self._sql(
                    "UPDATE {metadata} SET summary_last_updated = ? WHERE db_id = 1"
                ),
                (to_db_timestamp(stamped),),
            )
        logger.info("summary.rebuilt", namespace=self._namespace)
        return stamped

    def query_summary_cache(self) -> list[SummaryEntry]:
        with self._session("query_summary_cache") as conn:
            rows = conn.execute(
                self._sql(
                    """
                    SELECT s.student_id, st.username, s.points
                    FROM {summary} AS s
                    JOIN {students} AS st ON s.student_id = st.db_id
                    ORDER BY st.username
                    """
                )
            ).fetchall()
        return [
            SummaryEntry(
                student_id=row["student_id"],
                username=row["username"],
                points=row["points"],
            )
            for row in rows
        ]

    def query_summary_last_updated(self) -> datetime | None:
        with self._session("query_summary_last_updated") as conn:
            row = conn.execute(
                self._sql("SELECT summary_last_updated FROM {metadata} WHERE db_id = 1")
            ).fetchone()
        if row is None or row["summary_last_updated"] is None:
            return None
        return from_db_timestamp(row["summary_last_updated"])


def connect(
    db_path: Path | None = None,
    namespace: str = DEFAULT_NAMESPACE,
    clock: Clock | None = None,
) -> Gateway:
    """Open the store and provision the namespace.

    Raises:
        PersistenceError: If the database cannot be opened or initialized
        ValueError: If the namespace is not a plain identifier
    """
    validate_namespace(namespace)
    db_path = db_path or DEFAULT_DB_PATH

    # Ensure directory exists
    db_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        conn = sqlite3.connect(db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
    except sqlite3.Error as e:
        raise PersistenceError("connect", e) from e

    gateway = Gateway(conn, namespace, clock)
    try:
        gateway.initialize()
    except PersistenceError:
        gateway.close()
        raise

    logger.info("database.initialized", path=str(db_path), namespace=namespace)
    return gateway


@contextmanager
def open_gateway(
    db_path: Path | None = None,
    namespace: str = DEFAULT_NAMESPACE,
    clock: Clock | None = None,
) -> Generator[Gateway, None, None]:
    """Get a provisioned gateway as context manager.

    Example:
        with open_gateway(Path("db/participation.db"), "fall2021") as gateway:
            students = gateway.query_active_students()
    """
    gateway = connect(db_path, namespace, clock)
    try:
        yield gateway
    finally:
        gateway.close()


def _row_to_student(row: sqlite3.Row) -> Student:
    """Convert database row to Student."""
    return Student(
        internal_id=row["db_id"],
        external_id=row["external_id"],
        name=row["name"],
        username=row["username"],
        status=Status(row["status"]),
        first_entered=from_db_timestamp(row["first_entered"]),
        last_updated=from_db_timestamp(row["last_updated"]),
    )


_STUDENT_SELECT = """
    SELECT st.db_id, st.external_id, st.name, st.username, ss.name AS status,
        st.first_entered, st.last_updated
    FROM {students} AS st
    JOIN {statuses} AS ss ON st.status_id = ss.db_id
"""

_SCHEMA = """
CREATE TABLE IF NOT EXISTS {statuses} (
    db_id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT UNIQUE NOT NULL,
    first_entered TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS {categories} (
    db_id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT UNIQUE NOT NULL,
    first_entered TEXT NOT NULL
);

-- external_id is the reconciliation key and survives dropping
CREATE TABLE IF NOT EXISTS {students} (
    db_id INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id TEXT UNIQUE NOT NULL,
    name TEXT UNIQUE NOT NULL,
    username TEXT UNIQUE NOT NULL,
    status_id INTEGER NOT NULL REFERENCES {statuses}(db_id),
    first_entered TEXT NOT NULL,
    last_updated TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS {events} (
    db_id INTEGER PRIMARY KEY AUTOINCREMENT,
    student_id INTEGER NOT NULL REFERENCES {students}(db_id),
    category_id INTEGER NOT NULL REFERENCES {categories}(db_id),
    first_entered TEXT NOT NULL,
    satisfactory INTEGER NOT NULL CHECK (satisfactory IN (0, 1))
);

CREATE TABLE IF NOT EXISTS {summary} (
    db_id INTEGER PRIMARY KEY AUTOINCREMENT,
    student_id INTEGER UNIQUE NOT NULL REFERENCES {students}(db_id),
    points INTEGER NOT NULL DEFAULT 0 CHECK (points >= 0)
);

CREATE TABLE IF NOT EXISTS {metadata} (
    db_id INTEGER PRIMARY KEY,
    first_created TEXT NOT NULL,
    last_opened TEXT NOT NULL,
    summary_last_updated TEXT
);

CREATE INDEX IF NOT EXISTS {events}_student_time ON {events}(student_id, first_entered);
"""
