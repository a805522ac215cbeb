"""FastAPI surface for the shift scheduler.

Every route works inside one restaurant's data, named by the
``X-Restaurant-Id`` header. Identity and authorization are resolved upstream.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import datetime
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

# Ensure the flat module imports (e.g., "import database") resolve.
APP_DIR = Path(__file__).resolve().parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import database  # noqa: E402
from database import employee_to_dict, get_restaurant_employee, parse_date, shift_to_dict  # noqa: E402
from employees import (  # noqa: E402
    create_employee,
    deactivate_employee,
    employee_stats,
    get_employee,
    list_employees,
    update_employee,
)
from errors import ConflictError, SchedulingError, ValidationError  # noqa: E402
from schedule_settings import load_schedule_config, reset_schedule_config, save_schedule_overrides  # noqa: E402
from shifts import (  # noqa: E402
    bulk_create_shifts,
    create_shift,
    delete_shift,
    list_employee_shifts,
    list_restaurant_shifts,
    update_shift,
)
from weekly_schedule import assemble_week, hourly_view  # noqa: E402
from weeks import current_week, next_week, previous_week, validate_week, week_range, weeks_in_year  # noqa: E402

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    database.init_database()
    yield


app = FastAPI(title="Restaurant Shift Scheduler API", version="0.1", lifespan=lifespan)


def get_db():
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_restaurant_id(x_restaurant_id: Optional[str] = Header(None)) -> str:
    restaurant_id = (x_restaurant_id or "").strip()
    if not restaurant_id:
        raise HTTPException(status_code=400, detail="X-Restaurant-Id header is required")
    return restaurant_id


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(_: Request, exc: SchedulingError) -> JSONResponse:
    content: Dict[str, Any] = {"detail": exc.message}
    if isinstance(exc, ValidationError) and exc.field:
        content["field"] = exc.field
    if isinstance(exc, ConflictError) and exc.conflicting_shift is not None:
        content["conflictingShift"] = shift_to_dict(exc.conflicting_shift)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(content))


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(_: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Unhandled storage failure: %s", exc)
    return JSONResponse(status_code=500, content={"detail": "Storage failure"})


def _parse_int(value: Optional[str], field: str) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"{field} must be a number") from None


def _parse_week(week: Optional[str], year: Optional[str]) -> tuple[int, int]:
    week_value = _parse_int(week, "week")
    year_value = _parse_int(year, "year")
    validate_week(week_value, year_value, bound_year=True)
    return week_value, year_value


def _optional_date(value: Optional[str], field: str) -> Optional[datetime.date]:
    if value is None or value == "":
        return None
    return parse_date(value, field=field)


def _week_payload(week: int, year: int) -> Dict[str, Any]:
    span = week_range(week, year)
    next_w, next_y = next_week(week, year)
    prev_w, prev_y = previous_week(week, year)
    return {
        "week": week,
        "year": year,
        "label": span.label(),
        "startDate": span.start.isoformat(),
        "endDate": span.end.isoformat(),
        "days": [day.isoformat() for day in span.days],
        "weeksInYear": weeks_in_year(year),
        "next": {"week": next_w, "year": next_y},
        "previous": {"week": prev_w, "year": prev_y},
    }


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/v1/weeks/current")
def weeks_current() -> JSONResponse:
    week, year = current_week()
    return JSONResponse(content=jsonable_encoder(_week_payload(week, year)))


@app.get("/api/v1/weeks/{year}/{week}")
def weeks_detail(year: str, week: str) -> JSONResponse:
    week_value, year_value = _parse_week(week, year)
    return JSONResponse(content=jsonable_encoder(_week_payload(week_value, year_value)))


@app.get("/api/v1/shifts/weekly")
def weekly_schedule(
    week: Optional[str] = Query(None),
    year: Optional[str] = Query(None),
    db=Depends(get_db),
    restaurant_id: str = Depends(get_restaurant_id),
) -> JSONResponse:
    week_value, year_value = _parse_week(week, year)
    schedule = assemble_week(db, restaurant_id, week_value, year_value)
    return JSONResponse(content=jsonable_encoder(schedule.to_dict()))


@app.get("/api/v1/shifts/weekly/hourly")
def weekly_hourly_schedule(
    week: Optional[str] = Query(None),
    year: Optional[str] = Query(None),
    db=Depends(get_db),
    restaurant_id: str = Depends(get_restaurant_id),
) -> JSONResponse:
    week_value, year_value = _parse_week(week, year)
    schedule = assemble_week(db, restaurant_id, week_value, year_value)
    config = load_schedule_config(db, restaurant_id)
    return JSONResponse(content=jsonable_encoder(hourly_view(schedule, config)))


@app.get("/api/v1/shifts")
def all_shifts(db=Depends(get_db), restaurant_id: str = Depends(get_restaurant_id)) -> JSONResponse:
    shifts = list_restaurant_shifts(db, restaurant_id)
    return JSONResponse(content=jsonable_encoder([shift_to_dict(shift, shift.employee) for shift in shifts]))


@app.get("/api/v1/shifts/employee/{employee_id}")
def employee_shifts(
    employee_id: str,
    startDate: Optional[str] = Query(None),
    endDate: Optional[str] = Query(None),
    db=Depends(get_db),
    restaurant_id: str = Depends(get_restaurant_id),
) -> JSONResponse:
    start = _optional_date(startDate, "startDate")
    end = _optional_date(endDate, "endDate")
    shifts = list_employee_shifts(db, restaurant_id, employee_id, start, end)
    employee = get_restaurant_employee(db, restaurant_id, employee_id)
    return JSONResponse(content=jsonable_encoder([shift_to_dict(shift, employee) for shift in shifts]))


@app.post("/api/v1/shifts")
def create_shift_endpoint(
    payload: Dict[str, Any],
    db=Depends(get_db),
    restaurant_id: str = Depends(get_restaurant_id),
) -> JSONResponse:
    shift = create_shift(db, restaurant_id, payload, actor=payload.get("actor") or "api")
    return JSONResponse(status_code=201, content=jsonable_encoder(shift_to_dict(shift)))


@app.post("/api/v1/shifts/bulk")
def bulk_create_endpoint(
    payload: Dict[str, Any],
    db=Depends(get_db),
    restaurant_id: str = Depends(get_restaurant_id),
) -> JSONResponse:
    config = load_schedule_config(db, restaurant_id)
    created = bulk_create_shifts(
        db,
        restaurant_id,
        payload.get("shifts"),
        check_within_batch=config.check_within_batch,
        actor=payload.get("actor") or "api",
    )
    return JSONResponse(status_code=201, content=jsonable_encoder([shift_to_dict(shift) for shift in created]))


@app.put("/api/v1/shifts/{shift_id}")
def update_shift_endpoint(
    shift_id: str,
    payload: Dict[str, Any],
    db=Depends(get_db),
    restaurant_id: str = Depends(get_restaurant_id),
) -> JSONResponse:
    shift = update_shift(db, restaurant_id, shift_id, payload, actor=payload.pop("actor", None) or "api")
    return JSONResponse(content=jsonable_encoder(shift_to_dict(shift)))


@app.delete("/api/v1/shifts/{shift_id}")
def delete_shift_endpoint(
    shift_id: str,
    db=Depends(get_db),
    restaurant_id: str = Depends(get_restaurant_id),
) -> JSONResponse:
    delete_shift(db, restaurant_id, shift_id)
    return JSONResponse(content={"id": shift_id, "deleted": True})


@app.get("/api/v1/employees")
def employees_index(
    includeInactive: bool = Query(False),
    db=Depends(get_db),
    restaurant_id: str = Depends(get_restaurant_id),
) -> JSONResponse:
    employees = list_employees(db, restaurant_id, only_active=not includeInactive)
    return JSONResponse(content=jsonable_encoder([employee_to_dict(employee) for employee in employees]))


@app.post("/api/v1/employees")
def employees_create(
    payload: Dict[str, Any],
    db=Depends(get_db),
    restaurant_id: str = Depends(get_restaurant_id),
) -> JSONResponse:
    employee = create_employee(db, restaurant_id, payload)
    return JSONResponse(status_code=201, content=jsonable_encoder(employee_to_dict(employee)))


@app.get("/api/v1/employees/{employee_id}")
def employees_detail(
    employee_id: str,
    db=Depends(get_db),
    restaurant_id: str = Depends(get_restaurant_id),
) -> JSONResponse:
    return JSONResponse(content=jsonable_encoder(employee_to_dict(get_employee(db, restaurant_id, employee_id))))


@app.put("/api/v1/employees/{employee_id}")
def employees_update(
    employee_id: str,
    payload: Dict[str, Any],
    db=Depends(get_db),
    restaurant_id: str = Depends(get_restaurant_id),
) -> JSONResponse:
    employee = update_employee(db, restaurant_id, employee_id, payload)
    return JSONResponse(content=jsonable_encoder(employee_to_dict(employee)))


@app.delete("/api/v1/employees/{employee_id}")
def employees_deactivate(
    employee_id: str,
    db=Depends(get_db),
    restaurant_id: str = Depends(get_restaurant_id),
) -> JSONResponse:
    employee = deactivate_employee(db, restaurant_id, employee_id)
    return JSONResponse(content=jsonable_encoder(employee_to_dict(employee)))


@app.get("/api/v1/employees/{employee_id}/stats")
def employees_stats(
    employee_id: str,
    startDate: Optional[str] = Query(None),
    endDate: Optional[str] = Query(None),
    db=Depends(get_db),
    restaurant_id: str = Depends(get_restaurant_id),
) -> JSONResponse:
    stats = employee_stats(
        db,
        restaurant_id,
        employee_id,
        _optional_date(startDate, "startDate"),
        _optional_date(endDate, "endDate"),
    )
    return JSONResponse(content=jsonable_encoder(stats))


@app.get("/api/v1/settings/schedule")
def schedule_settings(db=Depends(get_db), restaurant_id: str = Depends(get_restaurant_id)) -> JSONResponse:
    return JSONResponse(content=jsonable_encoder(load_schedule_config(db, restaurant_id).to_dict()))


@app.put("/api/v1/settings/schedule")
def update_schedule_settings(
    payload: Dict[str, Any],
    db=Depends(get_db),
    restaurant_id: str = Depends(get_restaurant_id),
) -> JSONResponse:
    actor = str(payload.pop("actor", None) or "api").strip() or "api"
    config = save_schedule_overrides(db, restaurant_id, payload, edited_by=actor)
    return JSONResponse(content=jsonable_encoder(config.to_dict()))


@app.delete("/api/v1/settings/schedule")
def reset_schedule_settings(db=Depends(get_db), restaurant_id: str = Depends(get_restaurant_id)) -> JSONResponse:
    return JSONResponse(content=jsonable_encoder(reset_schedule_config(db, restaurant_id).to_dict()))
