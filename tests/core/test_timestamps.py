"""Tests for synthspine.core.timestamps."""

from datetime import UTC, datetime

import pytest

from synthspine.core.timestamps import ManualClock, now_ms, to_iso8601, to_ms


class TestToMs:
    """Tests for to_ms."""

    def test_int_and_float(self):
        assert to_ms(1500) == 1500
        assert to_ms(1500.9) == 1500

    def test_numeric_string(self):
        assert to_ms("1500") == 1500

    def test_iso_strings(self):
        assert to_ms("1970-01-01T00:00:01Z") == 1000
        assert to_ms("1970-01-01T01:00:00+01:00") == 0

    def test_datetime(self):
        """Naive datetimes are UTC."""
        assert to_ms(datetime(1970, 1, 1, 0, 0, 2)) == 2000
        assert to_ms(datetime(1970, 1, 1, 0, 0, 2, tzinfo=UTC)) == 2000

    def test_rejects_bool(self):
        with pytest.raises(ValueError):
            to_ms(True)


class TestClocks:
    """Tests for now_ms, to_iso8601 and ManualClock."""

    def test_now_ms_is_epoch_ms(self):
        assert now_ms() > 1_600_000_000_000

    def test_to_iso8601(self):
        assert to_iso8601(0) == "1970-01-01T00:00:00+00:00"
        assert to_iso8601(None) is None

    def test_manual_clock(self):
        clock = ManualClock(100)
        assert clock() == 100
        assert clock.advance(50) == 150
        assert clock.set(10) == 10
        assert clock.now == 10
