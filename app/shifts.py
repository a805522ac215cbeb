"""Create, update, delete and bulk-create shifts for one restaurant.

Every write runs the conflict check and the insert/update inside the same
session transaction while holding the locks of the affected
``(restaurant, employee, date)`` slots, so two requests for the same employee
and day cannot both pass the check before either one is stored.
"""

from __future__ import annotations

import datetime
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from conflicts import check_conflicts, find_batch_conflicts
from database import (
    Employee,
    Shift,
    commit_session,
    get_active_employees,
    get_restaurant_employee,
    get_restaurant_shift,
    get_shifts_in_range,
    parse_date,
    record_audit_log,
)
from errors import ConflictError, NotFoundError, ValidationError
from shift_times import ShiftType, is_valid_time, normalize_time

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("employee_id", "date", "start_time", "end_time", "type")
FIELD_ALIASES = {
    "employee_id": ("employeeId", "employee_id"),
    "date": ("date",),
    "start_time": ("startTime", "start_time"),
    "end_time": ("endTime", "end_time"),
    "type": ("type",),
    "notes": ("notes",),
}
WIRE_NAMES = {
    "employee_id": "employeeId",
    "date": "date",
    "start_time": "startTime",
    "end_time": "endTime",
    "type": "type",
    "notes": "notes",
}
SLOT_LOCK_STRIPES = 64
_SLOT_LOCKS = [threading.Lock() for _ in range(SLOT_LOCK_STRIPES)]


@contextmanager
def slot_locks(keys: Iterable[Tuple[str, str, datetime.date]]) -> Iterator[None]:
    """Hold the striped locks covering ``keys``, acquired in index order."""
    indices = sorted({hash(key) % SLOT_LOCK_STRIPES for key in keys})
    acquired = []
    try:
        for index in indices:
            _SLOT_LOCKS[index].acquire()
            acquired.append(index)
        yield
    finally:
        for index in reversed(acquired):
            _SLOT_LOCKS[index].release()


def _lookup(payload: Dict[str, Any], name: str) -> Tuple[bool, Any]:
    for alias in FIELD_ALIASES[name]:
        if alias in payload:
            return True, payload[alias]
    return False, None


def _clean_field(name: str, value: Any) -> Any:
    wire = WIRE_NAMES[name]
    if name == "employee_id":
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{wire} is required.", field=wire)
        return str(value).strip()
    if name == "date":
        return parse_date(value, field=wire)
    if name in ("start_time", "end_time"):
        if not is_valid_time(value):
            raise ValidationError(f"{wire} must use the HH:MM 24-hour format.", field=wire)
        return normalize_time(value, field=wire)
    if name == "type":
        if value not in ShiftType.values():
            raise ValidationError(
                f"type must be one of: {', '.join(ShiftType.values())}.",
                field=wire,
            )
        return value
    if name == "notes":
        if value is None:
            return None
        return str(value)
    raise KeyError(name)


def validate_create_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Return a normalised shift dict or raise ``ValidationError``."""
    if not isinstance(payload, dict):
        raise ValidationError("Shift payload must be a JSON object.")
    missing = []
    for name in REQUIRED_FIELDS:
        present, value = _lookup(payload, name)
        if not present or value is None or value == "":
            missing.append(WIRE_NAMES[name])
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}.", field=missing[0])
    cleaned = {name: _clean_field(name, _lookup(payload, name)[1]) for name in REQUIRED_FIELDS}
    cleaned["notes"] = _clean_field("notes", _lookup(payload, "notes")[1])
    return cleaned


def validate_update_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Validate only the fields present in a partial update."""
    if not isinstance(payload, dict):
        raise ValidationError("Shift payload must be a JSON object.")
    cleaned: Dict[str, Any] = {}
    for name in FIELD_ALIASES:
        present, value = _lookup(payload, name)
        if present:
            cleaned[name] = _clean_field(name, value)
    return cleaned


def _slot_key(restaurant_id: str, employee_id: str, shift_date: datetime.date) -> Tuple[str, str, datetime.date]:
    return restaurant_id, employee_id, shift_date


def _require_active_employee(session, restaurant_id: str, employee_id: str) -> Employee:
    employee = get_restaurant_employee(session, restaurant_id, employee_id, only_active=True)
    if employee is None:
        raise NotFoundError("Employee not found or inactive.")
    return employee


def _ensure_no_conflict(
    session,
    restaurant_id: str,
    values: Dict[str, Any],
    *,
    exclude_shift_id: Optional[str] = None,
    context: str = "",
) -> None:
    if values["type"] == ShiftType.OFF.value:
        return
    result = check_conflicts(
        session,
        restaurant_id,
        values["employee_id"],
        values["date"],
        values["start_time"],
        values["end_time"],
        exclude_shift_id=exclude_shift_id,
    )
    if result.conflict:
        logger.info(
            "Rejected shift for employee %s on %s (%s-%s): overlaps shift %s",
            values["employee_id"],
            values["date"],
            values["start_time"],
            values["end_time"],
            result.conflicting_shift.id,
        )
        raise ConflictError(f"{context}{result.message}", conflicting_shift=result.conflicting_shift)


def _audit_payload(values: Dict[str, Any]) -> Dict[str, Any]:
    return {WIRE_NAMES[key]: value for key, value in values.items() if key in WIRE_NAMES}


def list_employee_shifts(
    session,
    restaurant_id: str,
    employee_id: str,
    start_date: Optional[datetime.date] = None,
    end_date: Optional[datetime.date] = None,
) -> List[Shift]:
    if get_restaurant_employee(session, restaurant_id, employee_id) is None:
        raise NotFoundError("Employee not found.")
    return get_shifts_in_range(session, restaurant_id, start_date, end_date, employee_id=employee_id)


def list_restaurant_shifts(session, restaurant_id: str) -> List[Shift]:
    return get_shifts_in_range(session, restaurant_id)


def create_shift(session, restaurant_id: str, payload: Dict[str, Any], *, actor: str = "api") -> Shift:
    values = validate_create_payload(payload)
    _require_active_employee(session, restaurant_id, values["employee_id"])
    with slot_locks([_slot_key(restaurant_id, values["employee_id"], values["date"])]):
        _ensure_no_conflict(session, restaurant_id, values)
        shift = Shift(restaurant_id=restaurant_id, **values)
        session.add(shift)
        commit_session(session, "create shift", flush_only=True)
        record_audit_log(
            session,
            restaurant_id,
            actor,
            "SHIFT_CREATE",
            target_id=shift.id,
            payload=_audit_payload(values),
            commit=False,
        )
        commit_session(session, "create shift")
    session.refresh(shift)
    logger.info(
        "Created shift %s for employee %s on %s (%s-%s)",
        shift.id,
        shift.employee_id,
        shift.date,
        shift.start_time,
        shift.end_time,
    )
    return shift


def update_shift(
    session, restaurant_id: str, shift_id: str, payload: Dict[str, Any], *, actor: str = "api"
) -> Shift:
    changes = validate_update_payload(payload)
    shift = get_restaurant_shift(session, restaurant_id, shift_id)
    if shift is None:
        raise NotFoundError("Shift not found.")

    if "employee_id" in changes and changes["employee_id"] != shift.employee_id:
        _require_active_employee(session, restaurant_id, changes["employee_id"])

    resulting = {
        "employee_id": changes.get("employee_id", shift.employee_id),
        "date": changes.get("date", shift.date),
        "start_time": changes.get("start_time", shift.start_time),
        "end_time": changes.get("end_time", shift.end_time),
        "type": changes.get("type", shift.type),
    }
    if resulting["type"] != ShiftType.OFF.value:
        for name in ("start_time", "end_time"):
            if not resulting[name]:
                raise ValidationError(
                    f"{WIRE_NAMES[name]} is required for {resulting['type']} shifts.",
                    field=WIRE_NAMES[name],
                )

    keys = [
        _slot_key(restaurant_id, shift.employee_id, shift.date),
        _slot_key(restaurant_id, resulting["employee_id"], resulting["date"]),
    ]
    with slot_locks(keys):
        if any(name in changes for name in ("employee_id", "date", "start_time", "end_time", "type")):
            _ensure_no_conflict(session, restaurant_id, resulting, exclude_shift_id=shift.id)
        for name, value in changes.items():
            setattr(shift, name, value)
        record_audit_log(
            session,
            restaurant_id,
            actor,
            "SHIFT_UPDATE",
            target_id=shift.id,
            payload=_audit_payload(changes),
            commit=False,
        )
        commit_session(session, "update shift")
    session.refresh(shift)
    logger.info("Updated shift %s (%s)", shift.id, ", ".join(sorted(changes)) or "no changes")
    return shift


def delete_shift(session, restaurant_id: str, shift_id: str, *, actor: str = "api") -> None:
    shift = get_restaurant_shift(session, restaurant_id, shift_id)
    if shift is None:
        raise NotFoundError("Shift not found.")
    session.delete(shift)
    record_audit_log(session, restaurant_id, actor, "SHIFT_DELETE", target_id=shift_id, payload={}, commit=False)
    commit_session(session, "delete shift")
    logger.info("Deleted shift %s", shift_id)


def bulk_create_shifts(
    session,
    restaurant_id: str,
    items: List[Dict[str, Any]],
    *,
    check_within_batch: bool = True,
    actor: str = "api",
) -> List[Shift]:
    """Create every item or none of them.

    Items are validated first, then the set of employees, then each item is
    checked against stored shifts. With ``check_within_batch`` the items are
    also checked against each other.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("shifts must be a non-empty list.", field="shifts")
    validated: List[Dict[str, Any]] = []
    for index, item in enumerate(items):
        try:
            validated.append(validate_create_payload(item))
        except ValidationError as exc:
            raise ValidationError(f"shifts[{index}]: {exc.message}", field=exc.field) from exc

    employee_ids = {values["employee_id"] for values in validated}
    found = {employee.id for employee in get_active_employees(session, restaurant_id, employee_ids)}
    if found != employee_ids:
        raise NotFoundError("One or more employees do not belong to this restaurant or are inactive.")

    if check_within_batch:
        pairs = find_batch_conflicts(validated)
        if pairs:
            left, right = pairs[0]
            other = validated[left]
            raise ConflictError(
                f"shifts[{right}] overlaps shifts[{left}] in the same batch "
                f"({other['start_time']} - {other['end_time']})."
            )

    keys = [_slot_key(restaurant_id, values["employee_id"], values["date"]) for values in validated]
    created: List[Shift] = []
    with slot_locks(keys):
        for index, values in enumerate(validated):
            context = f"shifts[{index}] (employee {values['employee_id']} on {values['date'].isoformat()}): "
            _ensure_no_conflict(session, restaurant_id, values, context=context)
        for values in validated:
            shift = Shift(restaurant_id=restaurant_id, **values)
            session.add(shift)
            created.append(shift)
        commit_session(session, "create shifts", flush_only=True)
        record_audit_log(
            session,
            restaurant_id,
            actor,
            "SHIFT_BULK_CREATE",
            target_id=None,
            payload={"count": len(created), "ids": [shift.id for shift in created]},
            commit=False,
        )
        commit_session(session, "create shifts")
    for shift in created:
        session.refresh(shift)
    logger.info("Bulk created %d shifts for restaurant %s", len(created), restaurant_id)
    return created
