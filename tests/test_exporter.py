"""Tests for the gradebook summary export."""

import io

import pytest

from participation.core.exporter import (
    DEFAULT_HEADERS,
    export_summary,
    period_maxima,
    write_summary_file,
)
from participation.models import SummaryRow


@pytest.fixture
def rows() -> list[SummaryRow]:
    return [
        SummaryRow("asmith", 3, 0, 5),
        SummaryRow("bjones", 1, 4, 2),
    ]


class TestExportSummary:
    """Tests for export_summary."""

    def test_header_embeds_maxima(self, rows):
        """Each period header shows the highest score in that period."""
        out = io.StringIO()
        export_summary(rows, out, ("P1 {max}", "P2 {max}", "P3 {max}"))

        header = out.getvalue().splitlines()[0]
        assert header == '"Username"\t"P1 3"\t"P2 4"\t"P3 5"'

    def test_data_rows(self, rows):
        """One quoted-username row per student with integer counts."""
        out = io.StringIO()
        export_summary(rows, out)

        lines = out.getvalue().splitlines()
        assert lines[1:] == ['"asmith"\t3\t0\t5', '"bjones"\t1\t4\t2']

    def test_default_headers(self, rows):
        """Default headers carry the gradebook column ids."""
        out = io.StringIO()
        export_summary(rows, out)

        header = out.getvalue().splitlines()[0]
        assert '"Participation 1 [Total Pts: 3 Score] |1576192"' in header

    def test_no_rows(self):
        """Empty summary writes only the header with zero maxima."""
        out = io.StringIO()
        export_summary([], out, DEFAULT_HEADERS)

        assert out.getvalue().count("\n") == 1
        assert "Total Pts: 0 Score" in out.getvalue()

    def test_wrong_header_count(self, rows):
        """Exactly three period headers are required."""
        with pytest.raises(ValueError):
            export_summary(rows, io.StringIO(), ("only one",))


def test_period_maxima(rows):
    """Maxima are taken per period."""
    assert period_maxima(rows) == (3, 4, 5)
    assert period_maxima([]) == (0, 0, 0)


def test_write_summary_file(rows, tmp_path):
    """The export file is created with parent directories."""
    path = tmp_path / "exports" / "summary.tsv"

    write_summary_file(rows, path)

    content = path.read_text(encoding="utf-8")
    assert content.startswith('"Username"\t')
    assert content.endswith('"bjones"\t1\t4\t2\n')
