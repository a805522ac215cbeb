"""Week number <-> calendar date arithmetic.

Weeks start on Monday. Week 1 of a year starts on the Monday on or before
January 1st, so it can begin in the previous calendar year; stored schedules
rely on that numbering, which is not strictly ISO-8601. The ISO algorithm is
only used to size a year for navigation.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import List, Optional, Tuple

from errors import ValidationError

MIN_WEEK = 1
MAX_WEEK = 53
MIN_YEAR = 2000
MAX_YEAR = 2100
WEEKDAY_TOKENS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
END_OF_DAY = datetime.time(23, 59, 59, 999000)


@dataclass(frozen=True)
class WeekRange:
    week: int
    year: int
    start: datetime.date
    end: datetime.date

    @property
    def start_at(self) -> datetime.datetime:
        return datetime.datetime.combine(self.start, datetime.time.min)

    @property
    def end_at(self) -> datetime.datetime:
        return datetime.datetime.combine(self.end, END_OF_DAY)

    @property
    def days(self) -> List[datetime.date]:
        return [self.start + datetime.timedelta(days=offset) for offset in range(7)]

    def contains(self, value: datetime.date) -> bool:
        return self.start <= _as_date(value) <= self.end

    def label(self) -> str:
        start_str = self.start.strftime("%b %d")
        end_str = self.end.strftime("%b %d")
        if self.start.year != self.end.year:
            start_str = self.start.strftime("%b %d %Y")
            end_str = self.end.strftime("%b %d %Y")
        return f"{self.year} W{self.week:02d} ({start_str} - {end_str})"


def _as_date(value: datetime.date | datetime.datetime) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    return value


def validate_week(week: int, year: int, *, bound_year: bool = False) -> None:
    if isinstance(week, bool) or not isinstance(week, int) or not MIN_WEEK <= week <= MAX_WEEK:
        raise ValidationError(f"week must be a number between {MIN_WEEK} and {MAX_WEEK}.", field="week")
    if isinstance(year, bool) or not isinstance(year, int):
        raise ValidationError("year must be a number.", field="year")
    if bound_year and not MIN_YEAR <= year <= MAX_YEAR:
        raise ValidationError(f"year must be between {MIN_YEAR} and {MAX_YEAR}.", field="year")
    if not datetime.MINYEAR < year < datetime.MAXYEAR:
        raise ValidationError("year is outside the supported calendar.", field="year")


def first_monday(year: int) -> datetime.date:
    """Monday on or before January 1st of ``year``."""
    jan1 = datetime.date(year, 1, 1)
    # Sunday-based (getDay() + 6) % 7 equals Python's Monday-based weekday().
    return jan1 - datetime.timedelta(days=jan1.weekday())


def week_range(week: int, year: int) -> WeekRange:
    validate_week(week, year)
    start = first_monday(year) + datetime.timedelta(weeks=week - 1)
    return WeekRange(week=week, year=year, start=start, end=start + datetime.timedelta(days=6))


def day_index(value: datetime.date | datetime.datetime, week: int, year: int) -> int:
    """Position (0 = Monday) of ``value`` inside the given week."""
    current = _as_date(value)
    span = week_range(week, year)
    offset = (current - span.start).days
    if not 0 <= offset <= 6:
        raise ValidationError(f"{current.isoformat()} is not part of {span.label()}.", field="date")
    return offset


def week_of(value: datetime.date | datetime.datetime) -> Tuple[int, int]:
    """Return ``(week, year)`` such that ``week_range(week, year)`` contains ``value``."""
    current = _as_date(value)
    year = current.year
    if current >= first_monday(year + 1):
        return 1, year + 1
    return (current - first_monday(year)).days // 7 + 1, year


def iso_week_number(value: datetime.date) -> int:
    return _as_date(value).isocalendar()[1]


def weeks_in_year(year: int) -> int:
    week = iso_week_number(datetime.date(year, 12, 31))
    # Dec 31st already inside next year's ISO week 1.
    return 52 if week == 1 else week


def next_week(week: int, year: int) -> Tuple[int, int]:
    if week + 1 > weeks_in_year(year):
        return 1, year + 1
    return week + 1, year


def previous_week(week: int, year: int) -> Tuple[int, int]:
    if week - 1 < MIN_WEEK:
        return weeks_in_year(year - 1), year - 1
    return week - 1, year


def current_week(today: Optional[datetime.date] = None) -> Tuple[int, int]:
    return week_of(today or datetime.date.today())
