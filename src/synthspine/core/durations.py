"""
Duration parsing for rule definitions.

Rule files express TTLs and entity expiration either as ISO-8601 durations
or as named aliases. Everything is normalised to integer milliseconds;
``None`` means the value never expires.

Accepted forms::

    PT5M  PT1H30M  P8D  P1DT12H  PT0.5S        ISO-8601 (no years/months)
    P5M                                       date-part minutes (see below)
    FOUR_HOURS  EIGHT_DAYS  NEVER  ...        aliases (case-insensitive)
    300                                       bare integer = seconds

A ``M`` designator before the ``T`` separator would be months in strict
ISO-8601. Calendar months are meaningless as TTLs, and rule authors write
``P5M`` meaning five minutes, so it is read as minutes. ``Y`` is rejected.
"""

import re

from synthspine.core.errors import DurationError

SECOND_MS = 1000
MINUTE_MS = 60 * SECOND_MS
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS

NEVER = "NEVER"

DURATION_ALIASES: dict[str, int | None] = {
    "ONE_MINUTE": MINUTE_MS,
    "FIVE_MINUTES": 5 * MINUTE_MS,
    "FIFTEEN_MINUTES": 15 * MINUTE_MS,
    "THIRTY_MINUTES": 30 * MINUTE_MS,
    "ONE_HOUR": HOUR_MS,
    "FOUR_HOURS": 4 * HOUR_MS,
    "EIGHT_HOURS": 8 * HOUR_MS,
    "ONE_DAY": DAY_MS,
    "EIGHT_DAYS": 8 * DAY_MS,
    "THIRTY_DAYS": 30 * DAY_MS,
    "NINETY_DAYS": 90 * DAY_MS,
    NEVER: None,
}

_ISO_RE = re.compile(
    r"^P(?!$)"
    r"(?:(?P<weeks>\d+(?:\.\d+)?)W)?"
    r"(?:(?P<days>\d+(?:\.\d+)?)D)?"
    r"(?:(?P<date_minutes>\d+(?:\.\d+)?)M)?"
    r"(?:T(?=\d)"
    r"(?:(?P<hours>\d+(?:\.\d+)?)H)?"
    r"(?:(?P<minutes>\d+(?:\.\d+)?)M)?"
    r"(?:(?P<seconds>\d+(?:\.\d+)?)S)?"
    r")?$"
)

_UNIT_MS = {
    "weeks": 7 * DAY_MS,
    "days": DAY_MS,
    "date_minutes": MINUTE_MS,
    "hours": HOUR_MS,
    "minutes": MINUTE_MS,
    "seconds": SECOND_MS,
}


def parse_duration(value: str | int | None) -> int | None:
    """
    Parse a rule duration into milliseconds.

    Args:
        value: ISO-8601 string, alias, integer seconds, or None (NEVER)

    Returns:
        Milliseconds, or None when the duration is NEVER

    Raises:
        DurationError: If the value cannot be interpreted
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise DurationError(value)
    if isinstance(value, int):
        if value < 0:
            raise DurationError(value, f"Negative duration: {value}")
        return value * SECOND_MS

    text = str(value).strip().upper()
    if text in DURATION_ALIASES:
        return DURATION_ALIASES[text]
    if text.isdigit():
        return int(text) * SECOND_MS

    match = _ISO_RE.match(text)
    if match is None:
        raise DurationError(value)

    total = 0.0
    for unit, amount in match.groupdict().items():
        if amount is not None:
            total += float(amount) * _UNIT_MS[unit]
    return int(total)


def format_duration(ms: int | None) -> str:
    """Render milliseconds as a compact ISO-8601 duration (``NEVER`` for None)."""
    if ms is None:
        return NEVER
    days, rest = divmod(ms, DAY_MS)
    hours, rest = divmod(rest, HOUR_MS)
    minutes, rest = divmod(rest, MINUTE_MS)
    seconds = rest / SECOND_MS

    out = "P"
    if days:
        out += f"{days}D"
    if hours or minutes or seconds or not days:
        out += "T"
        if hours:
            out += f"{hours}H"
        if minutes:
            out += f"{minutes}M"
        if seconds or out.endswith("T"):
            out += f"{seconds:g}S"
    return out
