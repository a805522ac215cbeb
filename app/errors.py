from __future__ import annotations

from typing import Any, Optional


class SchedulingError(Exception):
    """Base class for errors raised by the scheduling services."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(SchedulingError, ValueError):
    """Malformed or missing input. Carries the offending field when known."""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class MalformedTimeError(ValidationError):
    def __init__(self, value: Any, field: Optional[str] = None) -> None:
        label = field or "time"
        super().__init__(f"{label} must use the HH:MM 24-hour format (got {value!r}).", field=field)
        self.value = value


class ConflictError(SchedulingError):
    """The candidate interval overlaps an interval already stored for the employee."""

    status_code = 409

    def __init__(self, message: str, conflicting_shift: Any = None) -> None:
        super().__init__(message)
        self.conflicting_shift = conflicting_shift


class NotFoundError(SchedulingError):
    status_code = 404


class StorageError(SchedulingError):
    status_code = 500
