from __future__ import annotations

import datetime
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from database import (
    DEFAULT_EMPLOYEE_COLOR,
    Employee,
    commit_session,
    get_restaurant_employee,
    get_shifts_in_range,
    record_audit_log,
)
from errors import NotFoundError, ValidationError
from shift_times import is_day_off, total_hours

logger = logging.getLogger(__name__)


def list_employees(session, restaurant_id: str, *, only_active: bool = True) -> List[Employee]:
    stmt = select(Employee).where(Employee.restaurant_id == restaurant_id)
    if only_active:
        stmt = stmt.where(Employee.is_active.is_(True))
    return list(session.scalars(stmt.order_by(Employee.name.asc())))


def get_employee(session, restaurant_id: str, employee_id: str) -> Employee:
    employee = get_restaurant_employee(session, restaurant_id, employee_id)
    if employee is None:
        raise NotFoundError("Employee not found.")
    return employee


def _text(payload: Dict[str, Any], key: str, *, required: bool = False) -> Optional[str]:
    value = payload.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{key} is required.", field=key)
        return None
    return str(value).strip()


def _rate(payload: Dict[str, Any]) -> Optional[float]:
    value = payload.get("hourlyRate")
    if value is None or value == "":
        return None
    try:
        rate = round(float(value), 2)
    except (TypeError, ValueError):
        raise ValidationError("hourlyRate must be a number.", field="hourlyRate") from None
    if rate < 0:
        raise ValidationError("hourlyRate cannot be negative.", field="hourlyRate")
    return rate


def create_employee(session, restaurant_id: str, payload: Dict[str, Any], *, actor: str = "api") -> Employee:
    if not isinstance(payload, dict):
        raise ValidationError("Employee payload must be a JSON object.")
    employee = Employee(
        restaurant_id=restaurant_id,
        name=_text(payload, "name", required=True),
        position=_text(payload, "position", required=True),
        hourly_rate=_rate(payload),
        phone=_text(payload, "phone"),
        color=_text(payload, "color") or DEFAULT_EMPLOYEE_COLOR,
        is_active=True,
    )
    session.add(employee)
    commit_session(session, "create employee", flush_only=True)
    record_audit_log(
        session,
        restaurant_id,
        actor,
        "EMP_CREATE",
        target_type="Employee",
        target_id=employee.id,
        payload={"name": employee.name},
        commit=False,
    )
    commit_session(session, "create employee")
    session.refresh(employee)
    logger.info("Created employee %s (%s)", employee.id, employee.name)
    return employee


def update_employee(
    session, restaurant_id: str, employee_id: str, payload: Dict[str, Any], *, actor: str = "api"
) -> Employee:
    if not isinstance(payload, dict):
        raise ValidationError("Employee payload must be a JSON object.")
    employee = get_employee(session, restaurant_id, employee_id)
    changes: Dict[str, Any] = {}
    if "name" in payload:
        changes["name"] = _text(payload, "name", required=True)
    if "position" in payload:
        changes["position"] = _text(payload, "position", required=True)
    if "hourlyRate" in payload:
        changes["hourly_rate"] = _rate(payload)
    if "phone" in payload:
        changes["phone"] = _text(payload, "phone")
    if "color" in payload:
        changes["color"] = _text(payload, "color") or DEFAULT_EMPLOYEE_COLOR
    if "isActive" in payload:
        if not isinstance(payload["isActive"], bool):
            raise ValidationError("isActive must be true or false.", field="isActive")
        changes["is_active"] = payload["isActive"]
    for name, value in changes.items():
        setattr(employee, name, value)
    record_audit_log(
        session,
        restaurant_id,
        actor,
        "EMP_UPDATE",
        target_type="Employee",
        target_id=employee.id,
        payload={key: payload[key] for key in sorted(payload)},
        commit=False,
    )
    commit_session(session, "update employee")
    session.refresh(employee)
    return employee


def deactivate_employee(session, restaurant_id: str, employee_id: str, *, actor: str = "api") -> Employee:
    """Soft delete: the employee and their shifts stay, but drop out of schedules."""
    employee = get_employee(session, restaurant_id, employee_id)
    employee.is_active = False
    record_audit_log(
        session,
        restaurant_id,
        actor,
        "EMP_DEACTIVATE",
        target_type="Employee",
        target_id=employee.id,
        commit=False,
    )
    commit_session(session, "deactivate employee")
    session.refresh(employee)
    logger.info("Deactivated employee %s", employee.id)
    return employee


def employee_stats(
    session,
    restaurant_id: str,
    employee_id: str,
    start_date: Optional[datetime.date] = None,
    end_date: Optional[datetime.date] = None,
) -> Dict[str, Any]:
    get_employee(session, restaurant_id, employee_id)
    shifts = get_shifts_in_range(session, restaurant_id, start_date, end_date, employee_id=employee_id)
    working = [shift for shift in shifts if not is_day_off(shift.type, shift.start_time, shift.end_time)]
    return {
        "employeeId": employee_id,
        "totalHours": total_hours(working),
        "totalShifts": len(working),
        "daysOff": len(shifts) - len(working),
    }
