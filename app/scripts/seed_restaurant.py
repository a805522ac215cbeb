from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import database  # noqa: E402
from database import Employee, get_shifts_on_day, init_database  # noqa: E402
from errors import ConflictError  # noqa: E402
from schedule_settings import DEFAULT_SHIFT_PRESETS  # noqa: E402
from shift_times import ShiftType  # noqa: E402
from shifts import create_shift  # noqa: E402
from weeks import current_week, week_range  # noqa: E402

DEMO_RESTAURANT_ID = "demo-restaurant"

DAY_INDEX = {
    "Mon": 0,
    "Tue": 1,
    "Wed": 2,
    "Thu": 3,
    "Fri": 4,
    "Sat": 5,
    "Sun": 6,
}

SAMPLE_EMPLOYEES: List[Dict] = [
    {
        "name": "Alicia Moreno",
        "position": "Chef",
        "hourly_rate": 24.5,
        "color": "#ef4444",
        "week": {"Mon": "MORNING", "Tue": "MORNING", "Wed": "OFF", "Thu": "MORNING", "Fri": "AFTERNOON"},
    },
    {
        "name": "Ben Carter",
        "position": "Line Cook",
        "hourly_rate": 18.0,
        "color": "#f59e0b",
        "week": {"Mon": "AFTERNOON", "Wed": "AFTERNOON", "Thu": "AFTERNOON", "Sat": "NIGHT"},
    },
    {
        "name": "Chloe Nguyen",
        "position": "Server",
        "hourly_rate": 14.25,
        "color": "#10b981",
        "week": {"Tue": "AFTERNOON", "Fri": "NIGHT", "Sat": "AFTERNOON", "Sun": "OFF"},
    },
    {
        "name": "Dario Russo",
        "position": "Bartender",
        "hourly_rate": 16.75,
        "week": {"Thu": "NIGHT", "Fri": "NIGHT", "Sat": "NIGHT"},
    },
    {
        "name": "Elena Petrova",
        "position": "Host",
        "hourly_rate": 13.5,
        "color": "#8b5cf6",
        "week": {"Sat": "MORNING", "Sun": "MORNING"},
    },
    {
        "name": "Farah Haddad",
        "position": "Dishwasher",
        "hourly_rate": 13.0,
        "week": {"Mon": "NIGHT", "Tue": "NIGHT", "Sun": "AFTERNOON"},
    },
]


def preset_times(shift_type: str) -> Tuple[str, str]:
    preset = DEFAULT_SHIFT_PRESETS.get(shift_type) or DEFAULT_SHIFT_PRESETS[ShiftType.OFF.value]
    # OFF markers are stored with a midnight placeholder since times are required on create.
    return preset["startTime"] or "00:00", preset["endTime"] or "00:00"


def upsert_employee(session, restaurant_id: str, entry: Dict) -> Tuple[Employee, bool]:
    stmt = select(Employee).where(Employee.restaurant_id == restaurant_id, Employee.name == entry["name"])
    employee = session.scalars(stmt).first()
    created = employee is None
    if created:
        employee = Employee(restaurant_id=restaurant_id, name=entry["name"])
        session.add(employee)
    employee.position = entry["position"]
    employee.hourly_rate = entry.get("hourly_rate")
    employee.color = entry.get("color") or database.DEFAULT_EMPLOYEE_COLOR
    employee.is_active = True
    session.flush()
    return employee, created


def seed_restaurant(
    restaurant_id: str = DEMO_RESTAURANT_ID,
    week: Optional[int] = None,
    year: Optional[int] = None,
) -> Dict[str, int]:
    init_database()
    if week is None or year is None:
        week, year = current_week()
    days = week_range(week, year).days
    counts = {"employees_created": 0, "employees_refreshed": 0, "shifts_created": 0, "shifts_skipped": 0}
    with database.SessionLocal() as session:
        employees = []
        for entry in SAMPLE_EMPLOYEES:
            employee, created = upsert_employee(session, restaurant_id, entry)
            counts["employees_created" if created else "employees_refreshed"] += 1
            employees.append((employee, entry))
        session.commit()

        for employee, entry in employees:
            for day_name, shift_type in entry.get("week", {}).items():
                shift_date = days[DAY_INDEX[day_name]]
                if get_shifts_on_day(session, restaurant_id, employee.id, shift_date):
                    counts["shifts_skipped"] += 1
                    continue
                start, end = preset_times(shift_type)
                payload = {
                    "employeeId": employee.id,
                    "date": shift_date.isoformat(),
                    "startTime": start,
                    "endTime": end,
                    "type": shift_type,
                    "notes": "Seeded",
                }
                try:
                    create_shift(session, restaurant_id, payload, actor="seed")
                except ConflictError as exc:
                    print(f"[seed] Skipping {employee.name} on {day_name}: {exc.message}")
                    counts["shifts_skipped"] += 1
                    continue
                counts["shifts_created"] += 1
    print(
        f"Seed complete for week {week}/{year}. Created {counts['employees_created']} employees, "
        f"refreshed {counts['employees_refreshed']}, stored {counts['shifts_created']} shifts."
    )
    return counts


if __name__ == "__main__":
    seed_restaurant()
