"""Overlap detection between a candidate shift and the shifts already stored."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from database import Shift, get_shifts_on_day
from shift_times import intervals_overlap, is_day_off


@dataclass
class ConflictCheck:
    conflict: bool
    conflicting_shift: Optional[Shift] = None

    @property
    def message(self) -> Optional[str]:
        if not self.conflict or self.conflicting_shift is None:
            return None
        return overlap_message(self.conflicting_shift.start_time, self.conflicting_shift.end_time)


def overlap_message(start_time: str, end_time: str) -> str:
    return f"Shift overlaps an existing shift ({start_time} - {end_time})."


def first_overlap(start_time: str, end_time: str, existing: Iterable[Shift]) -> Optional[Shift]:
    for shift in existing:
        if is_day_off(shift.type, shift.start_time, shift.end_time):
            continue
        if intervals_overlap(start_time, end_time, shift.start_time, shift.end_time):
            return shift
    return None


def check_conflicts(
    session,
    restaurant_id: str,
    employee_id: str,
    shift_date: datetime.date,
    start_time: str,
    end_time: str,
    exclude_shift_id: Optional[str] = None,
) -> ConflictCheck:
    """Compare the candidate interval with the employee's other shifts on the same day.

    ``exclude_shift_id`` leaves the shift being edited out of the comparison so
    it never collides with its own previous state. Only the stored day is
    consulted: an overnight shift is checked against shifts dated the same day.
    """
    existing = get_shifts_on_day(
        session,
        restaurant_id,
        employee_id,
        shift_date,
        exclude_shift_id=exclude_shift_id,
    )
    overlapping = first_overlap(start_time, end_time, existing)
    if overlapping is None:
        return ConflictCheck(conflict=False)
    return ConflictCheck(conflict=True, conflicting_shift=overlapping)


def find_batch_conflicts(items: Sequence[Dict[str, Any]]) -> List[Tuple[int, int]]:
    """Return index pairs of batch items that overlap each other.

    Items are validated shift dicts (``employee_id``, ``date``, ``start_time``,
    ``end_time``, ``type``).
    """
    by_slot: Dict[Tuple[str, datetime.date], List[int]] = {}
    for index, item in enumerate(items):
        if is_day_off(item["type"], item["start_time"], item["end_time"]):
            continue
        by_slot.setdefault((item["employee_id"], item["date"]), []).append(index)

    pairs: List[Tuple[int, int]] = []
    for indices in by_slot.values():
        for position, left in enumerate(indices):
            for right in indices[position + 1:]:
                a, b = items[left], items[right]
                if intervals_overlap(a["start_time"], a["end_time"], b["start_time"], b["end_time"]):
                    pairs.append((left, right))
    return pairs
