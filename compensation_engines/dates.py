"""
Calendar helpers for salary calculations.

Pure functions over dates: day-package parsing, billable-day counting,
month segmentation, class time-slot parsing and bonus period labels.
Weekdays use Python numbering (Monday=0 .. Sunday=6) throughout.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo

SUNDAY = 6
ALL_WEEKDAYS: frozenset[int] = frozenset(range(7))

_DAY_NAMES = {
    "monday": 0, "mon": 0,
    "tuesday": 1, "tue": 1, "tues": 1,
    "wednesday": 2, "wed": 2,
    "thursday": 3, "thu": 3, "thur": 3, "thurs": 3,
    "friday": 4, "fri": 4,
    "saturday": 5, "sat": 5,
    "sunday": 6, "sun": 6,
}

_PACKAGE_CODES = {
    "all days": ALL_WEEKDAYS,
    "everyday": ALL_WEEKDAYS,
    "daily": ALL_WEEKDAYS,
    "mwf": frozenset({0, 2, 4}),
    "tts": frozenset({1, 3, 5}),
    "tth": frozenset({1, 3, 5}),
}

_TOKEN_SPLIT = re.compile(r"[,\s/&]+")
_TIME_SLOT = re.compile(
    r"^\s*(?P<h>\d{1,2}):(?P<m>\d{2})(?::(?P<s>\d{2}))?\s*(?P<ampm>[AaPp][Mm])?\s*$"
)


def parse_day_package(day_package: str | None) -> frozenset[int]:
    """
    Parse a day-package label into the set of weekdays it covers.

    Accepts the package codes ("All days", "MWF", "TTS"/"TTH"), day names
    and abbreviations, comma lists, and numeric codes where 0 is Sunday.
    An empty label, or one with no recognizable day, means every day.
    """
    if not day_package or not day_package.strip():
        return ALL_WEEKDAYS

    normalized = day_package.strip().lower()
    if normalized in _PACKAGE_CODES:
        return _PACKAGE_CODES[normalized]

    days: set[int] = set()
    for token in _TOKEN_SPLIT.split(normalized):
        if not token:
            continue
        if token in _PACKAGE_CODES:
            days |= _PACKAGE_CODES[token]
        elif token in _DAY_NAMES:
            days.add(_DAY_NAMES[token])
        elif token.isdigit() and int(token) <= 6:
            # 0=Sunday, 1=Monday, ... 6=Saturday
            days.add((int(token) + 6) % 7)
    return frozenset(days) if days else ALL_WEEKDAYS


def billable_weekdays(day_package: str | None, include_sundays: bool) -> frozenset[int]:
    """Weekdays a student on this day-package is taught and paid for."""
    days = parse_day_package(day_package)
    if not include_sundays:
        days = days - {SUNDAY}
    return days


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every date in [start, end]."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def count_billable_days(start: date, end: date, weekdays: frozenset[int]) -> int:
    return sum(1 for d in iter_days(start, end) if d.weekday() in weekdays)


def month_bounds(day: date) -> tuple[date, date]:
    """First and last day of the month containing ``day``."""
    first = day.replace(day=1)
    next_first = (first + timedelta(days=32)).replace(day=1)
    return first, next_first - timedelta(days=1)


def split_by_month(start: date, end: date) -> list[tuple[date, date]]:
    """Split [start, end] into chunks that never cross a month boundary."""
    chunks: list[tuple[date, date]] = []
    current = start
    while current <= end:
        _, last = month_bounds(current)
        chunk_end = min(last, end)
        chunks.append((current, chunk_end))
        current = chunk_end + timedelta(days=1)
    return chunks


def period_key(day: date) -> str:
    """Salary payment period label ("YYYY-MM") for a date."""
    return f"{day.year:04d}-{day.month:02d}"


def parse_time_slot(slot: str) -> time:
    """
    Parse a class time slot such as "8:00 AM", "08:00" or "20:30:00".

    Raises:
        ValueError: If the slot is not a recognizable clock time.
    """
    match = _TIME_SLOT.match(slot or "")
    if match is None:
        raise ValueError(f"Unrecognized time slot: {slot!r}")
    hour, minute = int(match["h"]), int(match["m"])
    second = int(match["s"]) if match["s"] else 0
    ampm = match["ampm"]
    if ampm:
        if not 1 <= hour <= 12:
            raise ValueError(f"Hour out of range for 12-hour slot: {slot!r}")
        hour = hour % 12 + (12 if ampm.lower() == "pm" else 0)
    if hour > 23 or minute > 59 or second > 59:
        raise ValueError(f"Time slot out of range: {slot!r}")
    return time(hour, minute, second)


def resolve_timezone(name: str | None) -> tzinfo:
    """Map a tenant timezone name to a tzinfo ("UTC" and empty map to UTC)."""
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def ensure_aware(moment: datetime) -> datetime:
    """Treat naive datetimes from the store as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def scheduled_start(class_date: date, time_slot: str, tz: tzinfo) -> datetime:
    """Wall-clock class start on ``class_date`` in the tenant timezone."""
    return datetime.combine(class_date, parse_time_slot(time_slot), tzinfo=tz)


def parse_period_label(label: str) -> date:
    """
    Resolve a bonus period label to the date it is booked on.

    "YYYY-MM" is the first of the month, "YYYY-MM-DD" is that day, and ISO
    week "YYYY-Www" is the Monday of that week.

    Raises:
        ValueError: For any other shape.
    """
    text = (label or "").strip()
    week = re.fullmatch(r"(\d{4})-W(\d{2})", text)
    if week:
        return date.fromisocalendar(int(week[1]), int(week[2]), 1)
    month = re.fullmatch(r"(\d{4})-(\d{2})", text)
    if month:
        return date(int(month[1]), int(month[2]), 1)
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", text):
        return date.fromisoformat(text)
    raise ValueError(f"Unrecognized period label: {label!r}")
