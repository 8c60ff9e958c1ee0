"""Tests for roster file reading."""

import pytest

from participation.core.roster_reader import decode_roster, parse_roster, read_roster
from participation.errors import ParseError
from participation.models import RosterEntry


class TestReadRoster:
    """Tests for read_roster."""

    def test_reads_utf16_with_bom(self, write_roster):
        """UTF-16 export with BOM is decoded and parsed."""
        path = write_roster(
            [
                ["Smith", "Alice", "asmith", "50001", "Yes"],
                ["Núñez", "José", "jnunez", "50002", "Yes"],
            ]
        )

        entries = read_roster(path)

        assert entries == [
            RosterEntry("50001", "Alice Smith", "asmith"),
            RosterEntry("50002", "José Núñez", "jnunez"),
        ]

    def test_reads_utf16le_without_bom(self, write_roster):
        """Without a BOM the configured encoding is used."""
        path = write_roster([["Smith", "Alice", "asmith", "50001"]], encoding="utf-16-le")

        assert read_roster(path) == [RosterEntry("50001", "Alice Smith", "asmith")]

    def test_utf8_bom_detected(self, write_roster):
        """A UTF-8 BOM overrides the default UTF-16 encoding."""
        path = write_roster([["Smith", "Alice", "asmith", "50001"]], encoding="utf-8-sig")

        assert read_roster(path) == [RosterEntry("50001", "Alice Smith", "asmith")]

    def test_missing_file(self, tmp_path):
        """A missing file raises ParseError."""
        with pytest.raises(ParseError):
            read_roster(tmp_path / "nope.txt")

    def test_undecodable_bytes(self, tmp_path):
        """Truncated UTF-16 data raises ParseError."""
        path = tmp_path / "broken.txt"
        path.write_bytes(b"abc")

        with pytest.raises(ParseError):
            read_roster(path)


class TestParseRoster:
    """Tests for parse_roster."""

    def test_header_skipped(self):
        """The first line is a header."""
        text = "Last\tFirst\tUser\tID\nSmith\tAlice\tasmith\t50001\n"
        assert parse_roster(text) == [RosterEntry("50001", "Alice Smith", "asmith")]

    def test_no_header_option(self):
        """has_header=False keeps the first line."""
        text = "Smith\tAlice\tasmith\t50001\n"
        assert parse_roster(text, has_header=False) == [
            RosterEntry("50001", "Alice Smith", "asmith")
        ]

    def test_fields_trimmed(self):
        """Whitespace around fields is removed."""
        text = "h\n  Smith \t Alice\t asmith \t 50001  \n"
        assert parse_roster(text) == [RosterEntry("50001", "Alice Smith", "asmith")]

    def test_short_and_blank_rows_skipped(self):
        """Rows missing any of the four fields are skipped."""
        text = (
            "h\n"
            "Smith\tAlice\tasmith\n"
            "\n"
            "Jones\t\tbjones\t50002\n"
            "White\tCarol\tcwhite\t50003\textra\tcolumns\n"
        )
        assert parse_roster(text) == [RosterEntry("50003", "Carol White", "cwhite")]

    def test_order_and_duplicates_preserved(self):
        """Entries keep file order, duplicates included."""
        text = "h\nA\tX\tx1\t1\nB\tY\ty\t2\nA\tX\tx2\t1\n"
        entries = parse_roster(text)
        assert [e.external_id for e in entries] == ["1", "2", "1"]
        assert entries[-1].username == "x2"


class TestDecodeRoster:
    """Tests for decode_roster."""

    def test_unknown_encoding(self):
        """An unknown codec name raises ParseError."""
        with pytest.raises(ParseError):
            decode_roster(b"abcd", encoding="no-such-codec")
