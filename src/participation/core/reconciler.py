"""Roster reconciliation.

Aligns persisted students with an externally supplied roster snapshot:
- Students in the roster are inserted or re-enrolled; unchanged rows are
  not written, so `last_updated` only moves on a real change
- Students missing from the roster are marked dropped, never deleted
- Duplicate external ids in one roster resolve to the last occurrence

Fail-fast: the first PersistenceError propagates and writes already made
stay in place. Running the same roster again is safe.
"""

from __future__ import annotations

from typing import Iterable

import structlog

from participation.db.database import Gateway
from participation.models import ReconcileStats, RosterEntry, Status

logger = structlog.get_logger(__name__)


def synchronize(gateway: Gateway, roster: Iterable[RosterEntry]) -> ReconcileStats:
    """Synchronize persisted students with a roster snapshot.

    Args:
        gateway: Store session
        roster: Roster entries in file order

    Returns:
        ReconcileStats with inserted/updated/unchanged/dropped counts

    Raises:
        PersistenceError: On the first store failure
    """
    stats = ReconcileStats()
    persisted = {s.external_id: s for s in gateway.query_all_students()}
    not_in_roster = set(persisted)
    seen: set[str] = set()

    for entry in roster:
        existed = entry.external_id in persisted or entry.external_id in seen
        written = gateway.upsert_student(entry, Status.ENROLLED)
        not_in_roster.discard(entry.external_id)
        seen.add(entry.external_id)

        if not written:
            stats.unchanged += 1
        elif existed:
            stats.updated += 1
        else:
            stats.inserted += 1

    for external_id in sorted(not_in_roster):
        if persisted[external_id].status is Status.DROPPED:
            continue
        if gateway.set_student_status(external_id, Status.DROPPED):
            stats.dropped += 1
            logger.debug("roster.student_dropped", external_id=external_id)

    logger.info(
        "roster.synchronized",
        inserted=stats.inserted,
        updated=stats.updated,
        unchanged=stats.unchanged,
        dropped=stats.dropped,
    )
    return stats
