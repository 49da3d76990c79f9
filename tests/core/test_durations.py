"""Tests for synthspine.core.durations."""

import pytest

from synthspine.core.durations import (
    DAY_MS,
    HOUR_MS,
    MINUTE_MS,
    SECOND_MS,
    format_duration,
    parse_duration,
)
from synthspine.core.errors import DurationError, RuleConfigError


class TestParseDuration:
    """Tests for parse_duration."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("PT5M", 5 * MINUTE_MS),
            ("PT1H30M", 90 * MINUTE_MS),
            ("P8D", 8 * DAY_MS),
            ("P1DT12H", DAY_MS + 12 * HOUR_MS),
            ("PT0.5S", 500),
            ("P1W", 7 * DAY_MS),
            ("pt15m", 15 * MINUTE_MS),
        ],
    )
    def test_iso8601(self, text, expected):
        """ISO-8601 durations convert to milliseconds."""
        assert parse_duration(text) == expected

    def test_date_part_minutes(self):
        """P5M is read as five minutes, not five months."""
        assert parse_duration("P5M") == 5 * MINUTE_MS

    @pytest.mark.parametrize(
        "alias,expected",
        [
            ("FIVE_MINUTES", 5 * MINUTE_MS),
            ("FIFTEEN_MINUTES", 15 * MINUTE_MS),
            ("ONE_HOUR", HOUR_MS),
            ("FOUR_HOURS", 4 * HOUR_MS),
            ("EIGHT_HOURS", 8 * HOUR_MS),
            ("ONE_DAY", DAY_MS),
            ("EIGHT_DAYS", 8 * DAY_MS),
            ("THIRTY_DAYS", 30 * DAY_MS),
            ("NINETY_DAYS", 90 * DAY_MS),
            ("four_hours", 4 * HOUR_MS),
        ],
    )
    def test_aliases(self, alias, expected):
        """Named aliases are case-insensitive."""
        assert parse_duration(alias) == expected

    def test_never(self):
        """NEVER and None both mean no expiry."""
        assert parse_duration("NEVER") is None
        assert parse_duration(None) is None

    def test_integer_seconds(self):
        """Bare integers are seconds."""
        assert parse_duration(300) == 300 * SECOND_MS
        assert parse_duration("300") == 300 * SECOND_MS

    @pytest.mark.parametrize("value", ["FOREVER", "P1Y", "P", "PT", "5 minutes", -1, True])
    def test_invalid(self, value):
        """Unknown aliases and malformed values raise DurationError."""
        with pytest.raises(DurationError):
            parse_duration(value)

    def test_error_is_config_error(self):
        """Bad durations are rule-configuration errors."""
        with pytest.raises(RuleConfigError) as exc_info:
            parse_duration("SOMETIMES")
        assert exc_info.value.value == "SOMETIMES"
        assert exc_info.value.retryable is False


class TestFormatDuration:
    """Tests for format_duration."""

    @pytest.mark.parametrize(
        "ms,expected",
        [
            (None, "NEVER"),
            (0, "PT0S"),
            (5 * MINUTE_MS, "PT5M"),
            (90 * MINUTE_MS, "PT1H30M"),
            (8 * DAY_MS, "P8D"),
            (DAY_MS + 2 * HOUR_MS, "P1DT2H"),
        ],
    )
    def test_format(self, ms, expected):
        assert format_duration(ms) == expected

    def test_parse_accepts_formatted(self):
        """Formatted durations parse back to the same value."""
        for ms in (500, 5 * MINUTE_MS, 8 * DAY_MS + HOUR_MS):
            assert parse_duration(format_duration(ms)) == ms
