from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone

# A leave without a matching join is assumed to have started just after midnight.
MISSING_START_OFFSET = timedelta(seconds=1)

# datetime stops at microseconds; the last instant of a day carries 999 more nanoseconds.
END_OF_DAY_EXTRA_NS = 999

_NS_PER_US = 1_000
_NS_PER_MS = 1_000_000
_NS_PER_SECOND = 1_000_000_000

_RFC3339_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Normalize a timezone-aware datetime to UTC."""
    if value.tzinfo is None:
        raise ValueError("Datetime must be timezone-aware")
    return value.astimezone(timezone.utc)


def utc_day(value: datetime) -> date:
    return to_utc(value).date()


def start_of_day(value: datetime) -> datetime:
    return datetime.combine(utc_day(value), time.min, tzinfo=timezone.utc)


def end_of_day(value: datetime) -> datetime:
    """Last representable instant of the UTC calendar day containing value."""
    return datetime.combine(utc_day(value), time.max, tzinfo=timezone.utc)


def missing_start_for(value: datetime) -> datetime:
    return start_of_day(value) + MISSING_START_OFFSET


def to_nanoseconds(value: timedelta) -> int:
    return (value.days * 86400 + value.seconds) * _NS_PER_SECOND + value.microseconds * _NS_PER_US


def from_nanoseconds(value: int) -> timedelta:
    return timedelta(microseconds=value // _NS_PER_US)


def _with_fraction(value: int, digits: int) -> str:
    whole, remainder = divmod(value, 10**digits)
    fraction = str(remainder).rjust(digits, "0").rstrip("0")
    if fraction:
        return f"{whole}.{fraction}"
    return str(whole)


def format_duration(nanoseconds: int) -> str:
    """Render a duration in Go notation, e.g. 10m0s, 11h0m0s or 1.5ms."""
    if nanoseconds == 0:
        return "0s"

    sign = "-" if nanoseconds < 0 else ""
    value = abs(nanoseconds)

    if value < _NS_PER_US:
        return f"{sign}{value}ns"
    if value < _NS_PER_MS:
        return f"{sign}{_with_fraction(value, 3)}µs"
    if value < _NS_PER_SECOND:
        return f"{sign}{_with_fraction(value, 6)}ms"

    hours, remainder = divmod(value, 3600 * _NS_PER_SECOND)
    minutes, remainder = divmod(remainder, 60 * _NS_PER_SECOND)
    seconds = _with_fraction(remainder, 9)

    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{sign}{minutes}m{seconds}s"
    return f"{sign}{seconds}s"


def format_rfc3339(value: datetime, nanoseconds: int = 0) -> str:
    """Render value in RFC3339 with trailing fraction zeros trimmed.

    nanoseconds adds the sub-microsecond part (0-999) a datetime cannot hold.
    """
    value_utc = to_utc(value)
    fraction = f"{value_utc.microsecond:06d}{nanoseconds:03d}".rstrip("0")
    text = value_utc.strftime("%Y-%m-%dT%H:%M:%S")
    if fraction:
        text = f"{text}.{fraction}"
    return text + "Z"


def parse_rfc3339(text: str) -> tuple[datetime, int]:
    """Parse an RFC3339 timestamp into a UTC datetime and its sub-microsecond nanoseconds."""
    match = _RFC3339_PATTERN.match(text.strip())
    if match is None:
        raise ValueError(f"Invalid RFC3339 timestamp: {text!r}")

    base, fraction, offset = match.groups()
    if offset in ("Z", "z"):
        offset = "+00:00"
    fraction = (fraction or "").ljust(9, "0")[:9]
    value = datetime.fromisoformat(base.replace("t", "T") + offset).replace(microsecond=int(fraction[:6]))
    return value.astimezone(timezone.utc), int(fraction[6:])
