from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from database import Employee, Shift, get_active_employees, get_shifts_in_range, shift_to_dict
from schedule_settings import ScheduleConfig
from shift_times import intervals_overlap, total_hours
from weeks import WEEKDAY_TOKENS, WeekRange, day_index, week_range


@dataclass
class EmployeeShifts:
    employee_id: str
    employee_name: str
    employee_position: str
    shifts: List[Shift] = field(default_factory=list)
    color: Optional[str] = None

    @property
    def total_hours(self) -> float:
        return total_hours(self.shifts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "employeeId": self.employee_id,
            "employeeName": self.employee_name,
            "employeePosition": self.employee_position,
            "color": self.color,
            "totalHours": self.total_hours,
            "shifts": [shift_to_dict(shift) for shift in self.shifts],
        }


@dataclass
class WeeklySchedule:
    week: int
    year: int
    span: WeekRange
    employees: List[EmployeeShifts] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "week": self.week,
            "year": self.year,
            "startDate": self.span.start.isoformat(),
            "endDate": self.span.end.isoformat(),
            "label": self.span.label(),
            "employees": [entry.to_dict() for entry in self.employees],
        }


def group_by_employee(employees: List[Employee], shifts: List[Shift]) -> List[EmployeeShifts]:
    """Bucket ``shifts`` under each employee, keeping employees without shifts."""
    buckets: Dict[str, List[Shift]] = defaultdict(list)
    for shift in shifts:
        buckets[shift.employee_id].append(shift)
    grouped: List[EmployeeShifts] = []
    seen = set()
    for employee in employees:
        if employee.id in seen:
            continue
        seen.add(employee.id)
        grouped.append(
            EmployeeShifts(
                employee_id=employee.id,
                employee_name=employee.name,
                employee_position=employee.position,
                color=employee.color,
                shifts=list(buckets.get(employee.id, [])),
            )
        )
    return grouped


def assemble_week(session, restaurant_id: str, week: int, year: int) -> WeeklySchedule:
    span = week_range(week, year)
    employees = get_active_employees(session, restaurant_id)
    shifts = get_shifts_in_range(session, restaurant_id, span.start, span.end, active_only=True)
    return WeeklySchedule(week=week, year=year, span=span, employees=group_by_employee(employees, shifts))


def shifts_by_day(schedule: WeeklySchedule) -> Dict[str, List[List[Shift]]]:
    """Map employee id to seven day buckets (Monday first)."""
    grid: Dict[str, List[List[Shift]]] = {}
    for entry in schedule.employees:
        days: List[List[Shift]] = [[] for _ in range(7)]
        for shift in entry.shifts:
            days[day_index(shift.date, schedule.week, schedule.year)].append(shift)
        for bucket in days:
            bucket.sort(key=lambda item: item.start_time or "")
        grid[entry.employee_id] = days
    return grid


def hourly_view(schedule: WeeklySchedule, config: ScheduleConfig) -> Dict[str, Any]:
    """Who is on shift during each configured hourly slot of each day."""
    by_day = shifts_by_day(schedule)
    names = {entry.employee_id: entry.employee_name for entry in schedule.employees}
    days_payload = []
    for index, day in enumerate(schedule.span.days):
        slots_payload = []
        for slot in config.hourly_slots:
            on_shift = []
            for employee_id, days in by_day.items():
                for shift in days[index]:
                    if shift.is_day_off:
                        continue
                    if intervals_overlap(shift.start_time, shift.end_time, slot.start_time, slot.end_time):
                        on_shift.append(
                            {
                                "employeeId": employee_id,
                                "employeeName": names.get(employee_id),
                                "shiftId": shift.id,
                                "startTime": shift.start_time,
                                "endTime": shift.end_time,
                            }
                        )
            slots_payload.append({**slot.to_dict(), "label": slot.label, "employees": on_shift})
        days_payload.append({"date": day.isoformat(), "day": WEEKDAY_TOKENS[index], "slots": slots_payload})
    return {"week": schedule.week, "year": schedule.year, "days": days_payload}
