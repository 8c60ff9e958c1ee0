"""Tests for roster reconciliation."""

import pytest

from participation.core.reconciler import synchronize
from participation.errors import PersistenceError
from participation.models import RosterEntry, Status


def _by_external_id(gateway):
    return {s.external_id: s for s in gateway.query_all_students()}


class TestSynchronizeInsert:
    """Tests for first-time roster loads."""

    def test_inserts_all_entries_as_enrolled(self, gateway, roster):
        """Every roster entry becomes an enrolled student."""
        stats = synchronize(gateway, roster)

        assert stats.inserted == 3
        assert stats.writes == 3
        students = _by_external_id(gateway)
        assert set(students) == {"50001", "50002", "50003"}
        assert all(s.status is Status.ENROLLED for s in students.values())
        assert students["50001"].name == "Alice Smith"
        assert students["50001"].username == "asmith"

    def test_first_entered_and_last_updated_set(self, gateway, roster, clock):
        """New rows are stamped with the gateway clock."""
        synchronize(gateway, roster)

        alice = _by_external_id(gateway)["50001"]
        assert alice.first_entered == clock.now
        assert alice.last_updated == clock.now


class TestSynchronizeIdempotence:
    """Tests for re-running the same roster."""

    def test_second_run_writes_nothing(self, seeded_gateway, roster):
        """Unchanged roster yields zero writes."""
        stats = synchronize(seeded_gateway, roster)

        assert stats.writes == 0
        assert stats.unchanged == 3

    def test_second_run_keeps_last_updated(self, seeded_gateway, roster):
        """No-op upserts leave last_updated untouched."""
        before = _by_external_id(seeded_gateway)
        synchronize(seeded_gateway, roster)
        after = _by_external_id(seeded_gateway)

        for external_id, student in before.items():
            assert after[external_id].last_updated == student.last_updated


class TestSynchronizeUpdate:
    """Tests for changed roster details."""

    def test_changed_username_is_written(self, seeded_gateway, roster, clock):
        """A changed field updates the row and bumps last_updated."""
        changed = [
            RosterEntry("50001", "Alice Smith", "alice.smith"),
            roster[1],
            roster[2],
        ]
        stats = synchronize(seeded_gateway, changed)

        assert stats.updated == 1
        assert stats.unchanged == 2
        alice = _by_external_id(seeded_gateway)["50001"]
        assert alice.username == "alice.smith"
        assert alice.last_updated == clock.now
        assert alice.first_entered < clock.now

    def test_duplicate_external_id_last_one_wins(self, gateway):
        """Later entries for the same id overwrite earlier ones."""
        entries = [
            RosterEntry("50001", "Alice Smith", "asmith"),
            RosterEntry("50001", "Alice Smith-Jones", "asmithjones"),
        ]
        stats = synchronize(gateway, entries)

        students = _by_external_id(gateway)
        assert len(students) == 1
        assert students["50001"].name == "Alice Smith-Jones"
        assert students["50001"].username == "asmithjones"
        assert stats.inserted == 1
        assert stats.updated == 1


class TestSynchronizeDrop:
    """Tests for students missing from the roster."""

    def test_missing_student_is_dropped(self, seeded_gateway, roster, clock):
        """A enrolled + B enrolled, roster {A}: A untouched, B dropped."""
        before = _by_external_id(seeded_gateway)
        clock.advance(hours=1)

        stats = synchronize(seeded_gateway, [roster[0]])

        after = _by_external_id(seeded_gateway)
        assert after["50001"].status is Status.ENROLLED
        assert after["50001"].last_updated == before["50001"].last_updated
        assert after["50002"].status is Status.DROPPED
        assert after["50002"].last_updated == clock.now
        assert stats.dropped == 2
        assert stats.unchanged == 1

    def test_empty_roster_drops_everyone(self, seeded_gateway):
        """Empty roster drops all enrolled students and inserts nothing."""
        stats = synchronize(seeded_gateway, [])

        assert stats.inserted == 0
        assert stats.dropped == 3
        assert seeded_gateway.query_active_students() == []
        assert len(seeded_gateway.query_all_students()) == 3

    def test_already_dropped_not_rewritten(self, seeded_gateway, roster, clock):
        """Dropped students are left alone on later runs."""
        synchronize(seeded_gateway, [roster[0]])
        dropped_at = _by_external_id(seeded_gateway)["50002"].last_updated
        clock.advance(days=1)

        stats = synchronize(seeded_gateway, [roster[0]])

        assert stats.writes == 0
        assert _by_external_id(seeded_gateway)["50002"].last_updated == dropped_at

    def test_dropped_student_reenrolled(self, seeded_gateway, roster):
        """A dropped student who reappears is enrolled again."""
        synchronize(seeded_gateway, [roster[0]])

        stats = synchronize(seeded_gateway, roster)

        assert stats.updated == 2
        assert len(seeded_gateway.query_active_students()) == 3


class TestSynchronizeFailure:
    """Tests for fail-fast behavior."""

    def test_first_error_aborts_without_rollback(self, seeded_gateway, roster):
        """Writes before the failure stay; later steps never run."""
        entries = [
            RosterEntry("60001", "Dave Brown", "dbrown"),
            # Name clashes with Alice under a new id
            RosterEntry("60002", "Alice Smith", "asmith2"),
            RosterEntry("60003", "Eve Green", "egreen"),
        ]

        with pytest.raises(PersistenceError) as exc_info:
            synchronize(seeded_gateway, entries)

        assert exc_info.value.operation == "upsert_student"
        students = _by_external_id(seeded_gateway)
        assert "60001" in students
        assert "60003" not in students
        # Drop phase was never reached
        assert all(
            students[s.external_id].status is Status.ENROLLED for s in roster
        )
