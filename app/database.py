from __future__ import annotations

import datetime
import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    create_engine,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, sessionmaker

from errors import StorageError, ValidationError
from shift_times import ShiftType, is_day_off

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent / "data"
DATA_DIR.mkdir(parents=True, exist_ok=True)
SCHEDULE_DATABASE_URL = os.environ.get(
    "SHIFT_SCHEDULER_DATABASE_URL",
    f"sqlite:///{(DATA_DIR / 'schedule.db').as_posix()}",
)
DEFAULT_EMPLOYEE_COLOR = "#3b82f6"


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    """Metadata for every table of the scheduling service."""

    pass


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    restaurant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    position: Mapped[str] = mapped_column(String(80), nullable=False, default="")
    hourly_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    color: Mapped[str] = mapped_column(String(16), nullable=False, default=DEFAULT_EMPLOYEE_COLOR)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    shifts: Mapped[List["Shift"]] = relationship(back_populates="employee", cascade="all, delete-orphan")


class Shift(Base):
    __tablename__ = "shifts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    restaurant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    employee_id: Mapped[str] = mapped_column(ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False, default="")
    end_time: Mapped[str] = mapped_column(String(5), nullable=False, default="")
    type: Mapped[str] = mapped_column(String(12), nullable=False, default=ShiftType.MORNING.value)
    notes: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    employee: Mapped[Employee] = relationship(back_populates="shifts")

    __table_args__ = (Index("ix_shifts_employee_date", "employee_id", "date"),)

    @property
    def is_day_off(self) -> bool:
        return is_day_off(self.type, self.start_time, self.end_time)


class ScheduleSettings(Base):
    __tablename__ = "schedule_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    restaurant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    paramsJSON: Mapped[str] = mapped_column(String(8000), nullable=False, default="{}")
    lastEditedBy: Mapped[str] = mapped_column(String(60), nullable=False, default="system")
    lastEditedAt: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (UniqueConstraint("restaurant_id", name="uq_schedule_settings_restaurant"),)

    def params_dict(self) -> Dict:
        try:
            value = json.loads(self.paramsJSON or "{}")
            if isinstance(value, dict):
                return value
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable schedule settings for restaurant %s", self.restaurant_id)
        return {}


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    restaurant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(60), nullable=False)
    action: Mapped[str] = mapped_column(String(60), nullable=False)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False, default="Shift")
    target_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    payloadJSON: Mapped[str] = mapped_column(String(2000), nullable=False, default="{}")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


def _engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        # Request-scoped sessions may hop between FastAPI worker threads.
        return {"connect_args": {"check_same_thread": False}}
    return {}


engine = create_engine(SCHEDULE_DATABASE_URL, echo=False, future=True, **_engine_options(SCHEDULE_DATABASE_URL))
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False, future=True)


def init_database() -> None:
    Base.metadata.create_all(engine)


def commit_session(session, action: str, *, flush_only: bool = False) -> None:
    """Commit (or flush) the session; on failure roll back and raise ``StorageError``."""
    try:
        if flush_only:
            session.flush()
        else:
            session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Storage failure during %s", action)
        raise StorageError(f"Could not {action}.") from exc


def parse_date(value: Any, *, field: str = "date") -> datetime.date:
    """Accept ``YYYY-MM-DD`` or a full ISO-8601 timestamp and keep the calendar date."""
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a calendar date (YYYY-MM-DD).", field=field)
    raw = value.strip()
    try:
        return datetime.date.fromisoformat(raw)
    except ValueError:
        pass
    try:
        return datetime.datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        raise ValidationError(f"{field} must be a calendar date (YYYY-MM-DD).", field=field) from None


def employee_to_dict(employee: Employee) -> Dict[str, Any]:
    return {
        "id": employee.id,
        "restaurantId": employee.restaurant_id,
        "name": employee.name,
        "position": employee.position,
        "hourlyRate": employee.hourly_rate,
        "phone": employee.phone,
        "color": employee.color,
        "isActive": bool(employee.is_active),
    }


def shift_to_dict(shift: Shift, employee: Optional[Employee] = None) -> Dict[str, Any]:
    payload = {
        "id": shift.id,
        "employeeId": shift.employee_id,
        "restaurantId": shift.restaurant_id,
        "date": shift.date.isoformat(),
        "startTime": shift.start_time,
        "endTime": shift.end_time,
        "type": shift.type,
        "notes": shift.notes,
        "createdAt": shift.created_at.isoformat() if shift.created_at else None,
        "updatedAt": shift.updated_at.isoformat() if shift.updated_at else None,
    }
    if employee is not None:
        payload["employee"] = {
            "id": employee.id,
            "name": employee.name,
            "position": employee.position,
            "color": employee.color,
        }
    return payload


def get_restaurant_employee(
    session, restaurant_id: str, employee_id: str, *, only_active: bool = False
) -> Optional[Employee]:
    stmt = select(Employee).where(Employee.id == employee_id, Employee.restaurant_id == restaurant_id)
    if only_active:
        stmt = stmt.where(Employee.is_active.is_(True))
    return session.scalars(stmt).first()


def get_active_employees(session, restaurant_id: str, employee_ids: Optional[Iterable[str]] = None) -> List[Employee]:
    stmt = select(Employee).where(Employee.restaurant_id == restaurant_id, Employee.is_active.is_(True))
    if employee_ids is not None:
        stmt = stmt.where(Employee.id.in_(list(employee_ids)))
    return list(session.scalars(stmt.order_by(Employee.name.asc(), Employee.id.asc())))


def get_restaurant_shift(session, restaurant_id: str, shift_id: str) -> Optional[Shift]:
    stmt = select(Shift).where(Shift.id == shift_id, Shift.restaurant_id == restaurant_id)
    return session.scalars(stmt).first()


def get_shifts_on_day(
    session,
    restaurant_id: str,
    employee_id: str,
    shift_date: datetime.date,
    *,
    exclude_shift_id: Optional[str] = None,
) -> List[Shift]:
    stmt = select(Shift).where(
        Shift.restaurant_id == restaurant_id,
        Shift.employee_id == employee_id,
        Shift.date == shift_date,
    )
    if exclude_shift_id:
        stmt = stmt.where(Shift.id != exclude_shift_id)
    return list(session.scalars(stmt.order_by(Shift.start_time)))


def get_shifts_in_range(
    session,
    restaurant_id: str,
    start: Optional[datetime.date] = None,
    end: Optional[datetime.date] = None,
    *,
    employee_id: Optional[str] = None,
    active_only: bool = False,
) -> List[Shift]:
    stmt = select(Shift).where(Shift.restaurant_id == restaurant_id)
    if employee_id:
        stmt = stmt.where(Shift.employee_id == employee_id)
    if start is not None:
        stmt = stmt.where(Shift.date >= start)
    if end is not None:
        stmt = stmt.where(Shift.date <= end)
    if active_only:
        stmt = stmt.join(Employee, Employee.id == Shift.employee_id).where(Employee.is_active.is_(True))
    return list(session.scalars(stmt.order_by(Shift.date.asc(), Shift.start_time.asc())))


def get_schedule_settings(session, restaurant_id: str) -> Optional[ScheduleSettings]:
    stmt = select(ScheduleSettings).where(ScheduleSettings.restaurant_id == restaurant_id)
    return session.scalars(stmt).first()


def upsert_schedule_settings(
    session, restaurant_id: str, params_dict: Dict, *, edited_by: str = "system"
) -> ScheduleSettings:
    payload = params_dict if isinstance(params_dict, dict) else {}
    existing = get_schedule_settings(session, restaurant_id)
    if existing:
        existing.paramsJSON = json.dumps(payload)
        existing.lastEditedBy = edited_by
        existing.lastEditedAt = _utcnow()
        commit_session(session, "save schedule settings")
        session.refresh(existing)
        return existing
    settings = ScheduleSettings(
        restaurant_id=restaurant_id,
        paramsJSON=json.dumps(payload),
        lastEditedBy=edited_by,
        lastEditedAt=_utcnow(),
    )
    session.add(settings)
    commit_session(session, "save schedule settings")
    session.refresh(settings)
    return settings


def delete_schedule_settings(session, restaurant_id: str) -> None:
    existing = get_schedule_settings(session, restaurant_id)
    if existing:
        session.delete(existing)
        commit_session(session, "reset schedule settings")


def record_audit_log(
    session,
    restaurant_id: str,
    user_id: str,
    action: str,
    target_type: str = "Shift",
    target_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
    *,
    commit: bool = True,
) -> AuditLog:
    log = AuditLog(
        restaurant_id=restaurant_id,
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        payloadJSON=json.dumps(payload or {}, default=str),
    )
    session.add(log)
    if commit:
        commit_session(session, "record audit log")
    return log
