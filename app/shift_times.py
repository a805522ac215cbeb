"""Clock-time arithmetic for shifts.

Shift boundaries are ``HH:MM`` strings on a 24-hour clock. A shift whose end
is earlier than its start runs past midnight (``22:00``-``06:00`` is eight
hours), so every comparison here works on minute offsets with the end pushed
forward one day when needed.
"""

from __future__ import annotations

import enum
import re
from typing import Iterable, Optional

from errors import MalformedTimeError

MINUTES_PER_DAY = 24 * 60
TIME_PATTERN = re.compile(r"^(?P<hours>[01]?\d|2[0-3]):(?P<minutes>[0-5]\d)$")


class ShiftType(str, enum.Enum):
    MORNING = "MORNING"
    AFTERNOON = "AFTERNOON"
    NIGHT = "NIGHT"
    # Legacy day-off marker; never counts as work.
    OFF = "OFF"

    @classmethod
    def values(cls) -> list[str]:
        return [member.value for member in cls]


def is_valid_time(value: object) -> bool:
    return isinstance(value, str) and TIME_PATTERN.match(value.strip()) is not None


def to_minutes(value: str, *, field: Optional[str] = None) -> int:
    """Return minutes since midnight for an ``HH:MM`` label."""
    if not isinstance(value, str):
        raise MalformedTimeError(value, field=field)
    match = TIME_PATTERN.match(value.strip())
    if not match:
        raise MalformedTimeError(value, field=field)
    return int(match.group("hours")) * 60 + int(match.group("minutes"))


def normalize_time(value: str, *, field: Optional[str] = None) -> str:
    """Zero-pad a valid time label (``9:05`` -> ``09:05``)."""
    return format_minutes(to_minutes(value, field=field))


def format_minutes(minutes: int) -> str:
    minutes = minutes % MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def effective_end(start_minutes: int, end_minutes: int) -> int:
    if end_minutes < start_minutes:
        return end_minutes + MINUTES_PER_DAY
    return end_minutes


def interval_minutes(start: str, end: str) -> tuple[int, int]:
    start_minutes = to_minutes(start)
    return start_minutes, effective_end(start_minutes, to_minutes(end))


def intervals_overlap(start1: str, end1: str, start2: str, end2: str) -> bool:
    """Half-open overlap test; touching intervals do not overlap."""
    s1, e1 = interval_minutes(start1, end1)
    s2, e2 = interval_minutes(start2, end2)
    return s1 < e2 and s2 < e1


def duration_minutes(start: str, end: str) -> int:
    delta = to_minutes(end) - to_minutes(start)
    if delta < 0:
        delta += MINUTES_PER_DAY
    return delta


def duration_hours(start: str, end: str) -> float:
    return duration_minutes(start, end) / 60


def round_hours(value: float) -> float:
    return round(value, 2)


def is_day_off(shift_type: Optional[str], start: Optional[str] = None, end: Optional[str] = None) -> bool:
    if shift_type == ShiftType.OFF.value:
        return True
    return not start or not end


def shift_hours(shift) -> float:
    if is_day_off(shift.type, shift.start_time, shift.end_time):
        return 0.0
    return duration_hours(shift.start_time, shift.end_time)


def total_hours(shifts: Iterable) -> float:
    total = 0.0
    for shift in shifts:
        if is_day_off(shift.type, shift.start_time, shift.end_time):
            continue
        total += duration_hours(shift.start_time, shift.end_time)
    return round_hours(total)
