from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta

_CLOCK_RE = re.compile(r"(\d{1,2}):(\d{2})(?::(\d{2}))?")
_AM_MARKERS = ("上午", "AM", "am")
_PM_MARKERS = ("下午", "PM", "pm")


def parse_clock(value: str | None) -> tuple[int, int] | None:
    """Parse a wall-clock string into ``(hour, minute)``.

    Accepts ``HH:MM`` and ``HH:MM:SS`` plus the 12-hour ``上午/下午`` (or
    AM/PM) forms. ``24:00`` is kept as hour 24 so callers can map it to the
    next day's midnight. Returns ``None`` for anything unparsable.
    """
    if value is None:
        return None
    raw = str(value).strip()
    if not raw:
        return None

    match = _CLOCK_RE.search(raw)
    if match is None:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2))

    is_am = any(marker in raw for marker in _AM_MARKERS)
    is_pm = any(marker in raw for marker in _PM_MARKERS)
    if is_am or is_pm:
        if hour < 1 or hour > 12:
            return None
        if is_pm and hour != 12:
            hour += 12
        elif is_am and hour == 12:
            hour = 0

    if minute > 59 or hour > 24 or (hour == 24 and minute != 0):
        return None
    return hour, minute


def normalize_clock(value: str | None) -> str | None:
    parsed = parse_clock(value)
    if parsed is None:
        return None
    hour, minute = parsed
    return f"{hour:02d}:{minute:02d}"


def clock_to_time(value: str | None, default: time) -> time:
    parsed = parse_clock(value)
    if parsed is None or parsed[0] == 24:
        return default
    return time(hour=parsed[0], minute=parsed[1])


def at_clock(day: date, hour: int, minute: int = 0) -> datetime:
    """Combine a date and a clock reading; hour 24 rolls over to the next day."""
    if hour >= 24:
        return datetime.combine(day + timedelta(days=1), time(0, minute))
    return datetime.combine(day, time(hour, minute))


def at_time(day: date, value: time) -> datetime:
    return datetime.combine(day, value)


def minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60
