"""Shared fixtures: temporary stores, a controllable clock and sample rosters."""

from datetime import datetime, timedelta
from pathlib import Path

import pytest

from participation.config.app_config import clear_config_cache
from participation.core.reconciler import synchronize
from participation.db.database import connect
from participation.models import RosterEntry, Status, Student


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def _fresh_config():
    """Never let a cached config leak between tests."""
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2021, 10, 20, 10, 0).astimezone())


@pytest.fixture
def gateway(tmp_path, clock):
    """Provisioned gateway on a temporary database."""
    gw = connect(tmp_path / "participation.db", "test", clock)
    yield gw
    gw.close()


@pytest.fixture
def roster() -> list[RosterEntry]:
    return [
        RosterEntry(external_id="50001", name="Alice Smith", username="asmith"),
        RosterEntry(external_id="50002", name="Bob Jones", username="bjones"),
        RosterEntry(external_id="50003", name="Carol White", username="cwhite"),
    ]


@pytest.fixture
def seeded_gateway(gateway, roster, clock):
    """Gateway with the sample roster synchronized."""
    synchronize(gateway, roster)
    clock.advance(minutes=1)
    return gateway


@pytest.fixture
def make_students():
    """Factory for in-memory enrolled students."""

    def _make(count: int) -> list[Student]:
        stamp = datetime(2021, 9, 1, 9, 0).astimezone()
        return [
            Student(
                internal_id=i,
                external_id=f"{50000 + i}",
                name=f"Student {i}",
                username=f"student{i}",
                status=Status.ENROLLED,
                first_entered=stamp,
                last_updated=stamp,
            )
            for i in range(1, count + 1)
        ]

    return _make


@pytest.fixture
def write_roster(tmp_path):
    """Factory writing a tab-delimited roster file with a header row."""

    def _write(
        rows: list[list[str]], name: str = "roster.txt", encoding: str = "utf-16"
    ) -> Path:
        lines = ["Last Name\tFirst Name\tUsername\tStudent ID\tAvailability"]
        lines += ["\t".join(row) for row in rows]
        path = tmp_path / name
        path.write_text("\n".join(lines) + "\n", encoding=encoding)
        return path

    return _write
