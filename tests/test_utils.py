"""Unit tests for utility functions and the Timestamp type."""

from datetime import datetime, timezone

import pytest

from pydrivesync.utils import (
    NANOS_PER_SECOND,
    Timestamp,
    format_size,
    parse_iso_timestamp,
)


class TestTimestamp:
    """Tests for Timestamp construction and ordering."""

    def test_epoch_is_falsy(self):
        """The epoch is the "never synced" value and is falsy."""
        assert not Timestamp.epoch()
        assert Timestamp(0, 1)
        assert Timestamp(1, 0)

    def test_nsec_out_of_range_raises(self):
        """nsec must stay within one second."""
        with pytest.raises(ValueError):
            Timestamp(1, NANOS_PER_SECOND)
        with pytest.raises(ValueError):
            Timestamp(1, -1)

    def test_ordering_compares_seconds_then_nanoseconds(self):
        """Timestamps are ordered by (sec, nsec)."""
        assert Timestamp(1, 999) < Timestamp(2, 0)
        assert Timestamp(2, 1) > Timestamp(2, 0)
        assert Timestamp(5, 5) == Timestamp(5, 5)
        assert max(Timestamp(3, 0), Timestamp(2, 999_999_999)) == Timestamp(3, 0)

    def test_from_nanoseconds(self):
        """Nanosecond counts split into seconds and remainder."""
        ts = Timestamp.from_nanoseconds(1_700_000_000_000_000_500)
        assert ts == Timestamp(1_700_000_000, 500)
        assert ts.to_nanoseconds() == 1_700_000_000_000_000_500

    def test_from_float(self):
        """Floats as returned by os.stat are converted."""
        ts = Timestamp.from_float(10.5)
        assert ts == Timestamp(10, 500_000_000)
        assert ts.to_float() == pytest.approx(10.5)

    def test_from_datetime_naive_is_utc(self):
        """Naive datetimes are taken as UTC."""
        naive = datetime(2024, 1, 15, 10, 30, 0)
        aware = datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)
        assert Timestamp.from_datetime(naive) == Timestamp.from_datetime(aware)

    def test_now_is_after_epoch(self):
        """now() is later than the epoch."""
        assert Timestamp.now() > Timestamp.epoch()

    def test_isoformat(self):
        """isoformat uses a Z suffix."""
        assert Timestamp(0, 0).isoformat() == "1970-01-01T00:00:00Z"
        assert str(Timestamp(86400, 0)) == "1970-01-02T00:00:00Z"


class TestParseIsoTimestamp:
    """Tests for parse_iso_timestamp."""

    def test_parse_with_milliseconds(self):
        """Fractions are kept with nanosecond resolution."""
        ts = parse_iso_timestamp("2024-01-15T10:30:00.123Z")
        expected = Timestamp.from_datetime(
            datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)
        )
        assert ts == Timestamp(expected.sec, 123_000_000)

    def test_parse_with_nanoseconds(self):
        """Up to nine fraction digits are kept, the rest is dropped."""
        ts = parse_iso_timestamp("2024-01-15T10:30:00.1234567891Z")
        assert ts is not None
        assert ts.nsec == 123_456_789

    def test_parse_with_offset(self):
        """Offsets are converted to UTC."""
        utc = parse_iso_timestamp("2024-01-15T10:30:00Z")
        shifted = parse_iso_timestamp("2024-01-15T12:30:00+02:00")
        assert utc == shifted

    def test_parse_without_timezone(self):
        """A missing offset means UTC."""
        assert parse_iso_timestamp("2024-01-15T10:30:00") == parse_iso_timestamp(
            "2024-01-15T10:30:00Z"
        )

    @pytest.mark.parametrize("value", [None, "", "yesterday", "2024-01-15"])
    def test_invalid_returns_none(self, value):
        """Empty or malformed values yield None."""
        assert parse_iso_timestamp(value) is None


class TestFormatSize:
    """Tests for format_size."""

    def test_bytes(self):
        assert format_size(256) == "256 B"

    def test_kilobytes(self):
        assert format_size(1536) == "1.5 KB"

    def test_megabytes(self):
        assert format_size(5 * 1024 * 1024) == "5.0 MB"

    def test_gigabytes(self):
        assert format_size(2 * 1024 * 1024 * 1024) == "2.0 GB"
