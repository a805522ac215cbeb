from __future__ import annotations

import datetime
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from database import Base, Employee, Shift  # noqa: E402
from errors import ValidationError  # noqa: E402
from schedule_settings import ScheduleConfig  # noqa: E402
from weekly_schedule import assemble_week, group_by_employee, hourly_view, shifts_by_day  # noqa: E402

# Week 1 of 2026 runs Monday 2025-12-29 through Sunday 2026-01-04.
MONDAY = datetime.date(2025, 12, 29)


@pytest.fixture()
def session():
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False, future=True)
    with factory() as db_session:
        yield db_session
    engine.dispose()


def _shift(employee: Employee, offset: int, start: str, end: str, shift_type: str = "MORNING", restaurant="r1"):
    return Shift(
        restaurant_id=restaurant,
        employee_id=employee.id,
        date=MONDAY + datetime.timedelta(days=offset),
        start_time=start,
        end_time=end,
        type=shift_type,
    )


@pytest.fixture()
def roster(session):
    zoe = Employee(restaurant_id="r1", name="Zoe", position="Server", color="#10b981")
    ana = Employee(restaurant_id="r1", name="Ana", position="Chef")
    idle = Employee(restaurant_id="r1", name="Ivan", position="Host")
    retired = Employee(restaurant_id="r1", name="Rita", position="Cook", is_active=False)
    elsewhere = Employee(restaurant_id="r2", name="Omar", position="Cook")
    session.add_all([zoe, ana, idle, retired, elsewhere])
    session.flush()
    session.add_all(
        [
            _shift(ana, 0, "15:00", "22:00", "AFTERNOON"),
            _shift(ana, 0, "09:00", "15:00"),
            _shift(ana, 3, "00:00", "00:00", "OFF"),
            _shift(ana, 6, "22:00", "06:00", "NIGHT"),
            _shift(zoe, 2, "12:00", "18:00"),
            _shift(zoe, 7, "09:00", "15:00"),
            _shift(zoe, -1, "09:00", "15:00"),
            _shift(retired, 1, "09:00", "15:00"),
            _shift(elsewhere, 1, "09:00", "15:00", restaurant="r2"),
        ]
    )
    session.commit()
    return {"zoe": zoe, "ana": ana, "idle": idle}


def test_assemble_week_groups_active_employees_with_their_shifts(session, roster) -> None:
    schedule = assemble_week(session, "r1", 1, 2026)
    assert schedule.span.start == MONDAY
    assert [entry.employee_name for entry in schedule.employees] == ["Ana", "Ivan", "Zoe"]

    by_name = {entry.employee_name: entry for entry in schedule.employees}
    assert len(by_name["Ana"].shifts) == 4
    assert by_name["Ivan"].shifts == []
    assert [shift.date for shift in by_name["Zoe"].shifts] == [MONDAY + datetime.timedelta(days=2)]


def test_weekly_hour_totals_skip_days_off(session, roster) -> None:
    schedule = assemble_week(session, "r1", 1, 2026)
    totals = {entry.employee_name: entry.total_hours for entry in schedule.employees}
    assert totals == {"Ana": 21.0, "Ivan": 0.0, "Zoe": 6.0}


def test_schedule_payload_shape(session, roster) -> None:
    payload = assemble_week(session, "r1", 1, 2026).to_dict()
    assert payload["week"] == 1 and payload["year"] == 2026
    assert payload["startDate"] == "2025-12-29"
    assert payload["endDate"] == "2026-01-04"
    zoe = next(entry for entry in payload["employees"] if entry["employeeName"] == "Zoe")
    assert zoe["color"] == "#10b981"
    assert zoe["totalHours"] == 6.0
    assert zoe["shifts"][0]["startTime"] == "12:00"
    assert zoe["shifts"][0]["date"] == "2025-12-31"


def test_assemble_week_is_restaurant_scoped(session, roster) -> None:
    schedule = assemble_week(session, "r2", 1, 2026)
    assert [entry.employee_name for entry in schedule.employees] == ["Omar"]
    assert assemble_week(session, "r3", 1, 2026).employees == []


def test_assemble_week_rejects_invalid_week(session) -> None:
    with pytest.raises(ValidationError):
        assemble_week(session, "r1", 54, 2026)


def test_shifts_by_day_sorts_each_day_by_start(session, roster) -> None:
    schedule = assemble_week(session, "r1", 1, 2026)
    grid = shifts_by_day(schedule)
    monday = grid[roster["ana"].id][0]
    assert [shift.start_time for shift in monday] == ["09:00", "15:00"]
    assert [len(day) for day in grid[roster["zoe"].id]] == [0, 0, 1, 0, 0, 0, 0]
    assert [len(day) for day in grid[roster["idle"].id]] == [0] * 7


def test_hourly_view_places_employees_in_overlapping_slots(session, roster) -> None:
    schedule = assemble_week(session, "r1", 1, 2026)
    view = hourly_view(schedule, ScheduleConfig.from_dict({}))
    assert len(view["days"]) == 7
    monday = view["days"][0]
    assert monday["day"] == "Mon" and monday["date"] == "2025-12-29"
    names = {slot["label"]: [entry["employeeName"] for entry in slot["employees"]] for slot in monday["slots"]}
    assert names == {
        "12:00 - 16:00": ["Ana", "Ana"],
        "16:00 - 20:00": ["Ana"],
        "20:00 - 00:00": ["Ana"],
        "00:00 - 04:00": [],
    }
    thursday = view["days"][3]
    assert all(slot["employees"] == [] for slot in thursday["slots"])
    sunday = view["days"][6]
    assert [entry["employeeName"] for entry in sunday["slots"][2]["employees"]] == ["Ana"]


def test_group_by_employee_keeps_each_employee_once() -> None:
    ana = Employee(id="e1", restaurant_id="r1", name="Ana", position="Chef")
    grouped = group_by_employee([ana, ana], [])
    assert len(grouped) == 1
    assert grouped[0].shifts == []
