from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List

from database import delete_schedule_settings, get_schedule_settings, upsert_schedule_settings
from errors import ValidationError
from shift_times import ShiftType, is_valid_time, normalize_time


DEFAULT_HOURLY_SLOTS: List[Dict[str, str]] = [
    {"id": "slot-1", "startTime": "12:00", "endTime": "16:00"},
    {"id": "slot-2", "startTime": "16:00", "endTime": "20:00"},
    {"id": "slot-3", "startTime": "20:00", "endTime": "00:00"},
    {"id": "slot-4", "startTime": "00:00", "endTime": "04:00"},
]

DEFAULT_SHIFT_PRESETS: Dict[str, Dict[str, str]] = {
    ShiftType.MORNING.value: {"startTime": "09:00", "endTime": "15:00"},
    ShiftType.AFTERNOON.value: {"startTime": "15:00", "endTime": "22:00"},
    ShiftType.NIGHT.value: {"startTime": "22:00", "endTime": "06:00"},
    ShiftType.OFF.value: {"startTime": "", "endTime": ""},
}

BASELINE_SETTINGS: Dict[str, Any] = {
    "hourly_slots": DEFAULT_HOURLY_SLOTS,
    "shift_presets": DEFAULT_SHIFT_PRESETS,
    "bulk": {"check_within_batch": True},
}


@dataclass(frozen=True)
class HourlySlot:
    id: str
    start_time: str
    end_time: str

    @property
    def label(self) -> str:
        return f"{self.start_time} - {self.end_time}"

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "startTime": self.start_time, "endTime": self.end_time}


@dataclass(frozen=True)
class ShiftPreset:
    start_time: str
    end_time: str

    def to_dict(self) -> Dict[str, str]:
        return {"startTime": self.start_time, "endTime": self.end_time}


@dataclass
class ScheduleConfig:
    """Per-restaurant display and batching settings, defaults plus stored overrides."""

    hourly_slots: List[HourlySlot] = field(default_factory=list)
    shift_presets: Dict[str, ShiftPreset] = field(default_factory=dict)
    check_within_batch: bool = True

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ScheduleConfig":
        merged = merge_settings(payload)
        return cls(
            hourly_slots=[
                HourlySlot(id=slot["id"], start_time=slot["startTime"], end_time=slot["endTime"])
                for slot in merged["hourly_slots"]
            ],
            shift_presets={
                name: ShiftPreset(start_time=preset["startTime"], end_time=preset["endTime"])
                for name, preset in merged["shift_presets"].items()
            },
            check_within_batch=bool(merged["bulk"].get("check_within_batch", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hourly_slots": [slot.to_dict() for slot in self.hourly_slots],
            "shift_presets": {name: preset.to_dict() for name, preset in self.shift_presets.items()},
            "bulk": {"check_within_batch": self.check_within_batch},
        }


def build_default_settings() -> Dict[str, Any]:
    """Return a deepcopy so callers can mutate the settings safely."""
    return copy.deepcopy(BASELINE_SETTINGS)


def _deep_update(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_update(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def merge_settings(overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = _deep_update(build_default_settings(), overrides if isinstance(overrides, dict) else {})
    # A custom slot list replaces the defaults wholesale; an empty one does not.
    if not isinstance(merged.get("hourly_slots"), list) or not merged["hourly_slots"]:
        merged["hourly_slots"] = copy.deepcopy(DEFAULT_HOURLY_SLOTS)
    if not isinstance(merged.get("bulk"), dict):
        merged["bulk"] = copy.deepcopy(BASELINE_SETTINGS["bulk"])
    return merged


def validate_overrides(overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Check override values and return them with zero-padded times."""
    if not isinstance(overrides, dict):
        raise ValidationError("Schedule settings must be a JSON object.")
    unknown = sorted(set(overrides) - set(BASELINE_SETTINGS))
    if unknown:
        raise ValidationError(
            f"Unknown schedule settings: {', '.join(unknown)}; expected {', '.join(BASELINE_SETTINGS)}.",
            field=unknown[0],
        )
    cleaned: Dict[str, Any] = {}

    if "hourly_slots" in overrides:
        slots = overrides["hourly_slots"]
        if not isinstance(slots, list) or not slots:
            raise ValidationError("hourly_slots must be a non-empty list.", field="hourly_slots")
        cleaned_slots = []
        for index, slot in enumerate(slots):
            if not isinstance(slot, dict):
                raise ValidationError(f"hourly_slots[{index}] must be an object.", field="hourly_slots")
            start = slot.get("startTime")
            end = slot.get("endTime")
            for label, value in (("startTime", start), ("endTime", end)):
                if not is_valid_time(value):
                    raise ValidationError(
                        f"hourly_slots[{index}].{label} must use HH:MM.", field="hourly_slots"
                    )
            cleaned_slots.append(
                {
                    "id": str(slot.get("id") or f"slot-{index + 1}"),
                    "startTime": normalize_time(start),
                    "endTime": normalize_time(end),
                }
            )
        cleaned["hourly_slots"] = cleaned_slots

    if "shift_presets" in overrides:
        presets = overrides["shift_presets"]
        if not isinstance(presets, dict):
            raise ValidationError("shift_presets must be an object keyed by shift type.", field="shift_presets")
        cleaned_presets: Dict[str, Dict[str, str]] = {}
        for name, preset in presets.items():
            if name not in ShiftType.values():
                raise ValidationError(
                    f"Unknown shift type {name!r}; expected one of {', '.join(ShiftType.values())}.",
                    field="shift_presets",
                )
            if not isinstance(preset, dict):
                raise ValidationError(f"shift_presets.{name} must be an object.", field="shift_presets")
            start = preset.get("startTime") or ""
            end = preset.get("endTime") or ""
            if name == ShiftType.OFF.value and not start and not end:
                cleaned_presets[name] = {"startTime": "", "endTime": ""}
                continue
            if not is_valid_time(start) or not is_valid_time(end):
                raise ValidationError(f"shift_presets.{name} needs HH:MM start and end times.", field="shift_presets")
            cleaned_presets[name] = {"startTime": normalize_time(start), "endTime": normalize_time(end)}
        cleaned["shift_presets"] = cleaned_presets

    if "bulk" in overrides:
        bulk = overrides["bulk"]
        if not isinstance(bulk, dict):
            raise ValidationError("bulk must be an object.", field="bulk")
        unknown_bulk = sorted(set(bulk) - {"check_within_batch"})
        if unknown_bulk:
            raise ValidationError(f"Unknown bulk settings: {', '.join(unknown_bulk)}.", field="bulk")
        check = bulk.get("check_within_batch", True)
        if not isinstance(check, bool):
            raise ValidationError("bulk.check_within_batch must be true or false.", field="bulk")
        cleaned["bulk"] = {"check_within_batch": check}

    return cleaned


def load_schedule_config(session, restaurant_id: str) -> ScheduleConfig:
    stored = get_schedule_settings(session, restaurant_id)
    return ScheduleConfig.from_dict(stored.params_dict() if stored else {})


def save_schedule_overrides(
    session, restaurant_id: str, overrides: Dict[str, Any], *, edited_by: str = "api"
) -> ScheduleConfig:
    cleaned = validate_overrides(overrides)
    stored = get_schedule_settings(session, restaurant_id)
    combined = _deep_update(stored.params_dict() if stored else {}, cleaned)
    upsert_schedule_settings(session, restaurant_id, combined, edited_by=edited_by)
    return ScheduleConfig.from_dict(combined)


def reset_schedule_config(session, restaurant_id: str) -> ScheduleConfig:
    delete_schedule_settings(session, restaurant_id)
    return ScheduleConfig.from_dict({})
