from __future__ import annotations

import importlib
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import database as db  # noqa: E402

HEADERS = {"X-Restaurant-Id": "r1"}


@pytest.fixture()
def client(monkeypatch):
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    session_factory = sessionmaker(bind=engine, expire_on_commit=False, future=True)
    monkeypatch.setattr(db, "engine", engine)
    monkeypatch.setattr(db, "SessionLocal", session_factory)
    db.Base.metadata.create_all(engine)

    import api

    api = importlib.reload(api)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    api.app.dependency_overrides[api.get_db] = override_get_db
    with TestClient(api.app) as test_client:
        yield test_client
    api.app.dependency_overrides.clear()
    engine.dispose()


def _employee(client: TestClient, name: str = "Alice", headers=HEADERS) -> str:
    response = client.post("/api/v1/employees", json={"name": name, "position": "Chef"}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["id"]


def _shift(employee_id: str, date: str = "2026-01-01", start: str = "09:00", end: str = "15:00", kind="MORNING"):
    return {"employeeId": employee_id, "date": date, "startTime": start, "endTime": end, "type": kind}


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_week_navigation_endpoint(client) -> None:
    response = client.get("/api/v1/weeks/2026/1")
    assert response.status_code == 200
    payload = response.json()
    assert payload["startDate"] == "2025-12-29"
    assert payload["endDate"] == "2026-01-04"
    assert payload["weeksInYear"] == 53
    assert payload["previous"] == {"week": 52, "year": 2025}
    assert payload["next"] == {"week": 2, "year": 2026}
    assert client.get("/api/v1/weeks/current").status_code == 200
    assert client.get("/api/v1/weeks/2026/54").status_code == 400


def test_restaurant_header_is_required(client) -> None:
    response = client.get("/api/v1/shifts/weekly?week=1&year=2026")
    assert response.status_code == 400


def test_create_then_read_weekly_schedule(client) -> None:
    employee_id = _employee(client)
    created = client.post("/api/v1/shifts", json=_shift(employee_id), headers=HEADERS)
    assert created.status_code == 201, created.text
    assert created.json()["date"] == "2026-01-01"

    response = client.get("/api/v1/shifts/weekly", params={"week": 1, "year": 2026}, headers=HEADERS)
    assert response.status_code == 200
    payload = response.json()
    assert payload["startDate"] == "2025-12-29"
    assert payload["employees"][0]["employeeId"] == employee_id
    assert payload["employees"][0]["totalHours"] == 6.0
    assert payload["employees"][0]["shifts"][0]["id"] == created.json()["id"]


@pytest.mark.parametrize(
    "query",
    ["week=0&year=2026", "week=54&year=2026", "week=1&year=1999", "week=abc&year=2026", "year=2026"],
)
def test_weekly_schedule_rejects_bad_week_parameters(client, query) -> None:
    response = client.get(f"/api/v1/shifts/weekly?{query}", headers=HEADERS)
    assert response.status_code == 400


def test_conflicting_shift_returns_409_with_existing_shift(client) -> None:
    employee_id = _employee(client)
    first = client.post("/api/v1/shifts", json=_shift(employee_id), headers=HEADERS).json()
    response = client.post(
        "/api/v1/shifts",
        json=_shift(employee_id, start="14:00", end="18:00", kind="AFTERNOON"),
        headers=HEADERS,
    )
    assert response.status_code == 409
    body = response.json()
    assert "09:00 - 15:00" in body["detail"]
    assert body["conflictingShift"]["id"] == first["id"]


def test_touching_shift_is_created(client) -> None:
    employee_id = _employee(client)
    client.post("/api/v1/shifts", json=_shift(employee_id), headers=HEADERS)
    response = client.post(
        "/api/v1/shifts",
        json=_shift(employee_id, start="15:00", end="22:00", kind="AFTERNOON"),
        headers=HEADERS,
    )
    assert response.status_code == 201


def test_validation_errors_return_400_with_field(client) -> None:
    employee_id = _employee(client)
    response = client.post("/api/v1/shifts", json=_shift(employee_id, start="24:30"), headers=HEADERS)
    assert response.status_code == 400
    assert response.json()["field"] == "startTime"
    response = client.post("/api/v1/shifts", json={"employeeId": employee_id}, headers=HEADERS)
    assert response.status_code == 400


def test_other_restaurants_cannot_touch_shifts(client) -> None:
    employee_id = _employee(client)
    shift_id = client.post("/api/v1/shifts", json=_shift(employee_id), headers=HEADERS).json()["id"]
    other = {"X-Restaurant-Id": "r2"}
    assert client.post("/api/v1/shifts", json=_shift(employee_id), headers=other).status_code == 404
    assert client.put(f"/api/v1/shifts/{shift_id}", json={"notes": "x"}, headers=other).status_code == 404
    assert client.delete(f"/api/v1/shifts/{shift_id}", headers=other).status_code == 404
    assert client.get(f"/api/v1/shifts/employee/{employee_id}", headers=other).status_code == 404
    assert client.get("/api/v1/shifts", headers=other).json() == []


def test_update_and_delete_shift(client) -> None:
    employee_id = _employee(client)
    shift_id = client.post("/api/v1/shifts", json=_shift(employee_id), headers=HEADERS).json()["id"]
    response = client.put(
        f"/api/v1/shifts/{shift_id}",
        json={"startTime": "10:00", "endTime": "16:00"},
        headers=HEADERS,
    )
    assert response.status_code == 200
    assert response.json()["startTime"] == "10:00"
    assert client.delete(f"/api/v1/shifts/{shift_id}", headers=HEADERS).json() == {"id": shift_id, "deleted": True}
    assert client.put(f"/api/v1/shifts/{shift_id}", json={"notes": "x"}, headers=HEADERS).status_code == 404


def test_employee_shift_listing_filters_dates(client) -> None:
    employee_id = _employee(client)
    client.post("/api/v1/shifts", json=_shift(employee_id, date="2026-01-01"), headers=HEADERS)
    client.post("/api/v1/shifts", json=_shift(employee_id, date="2026-01-03"), headers=HEADERS)
    response = client.get(
        f"/api/v1/shifts/employee/{employee_id}",
        params={"startDate": "2026-01-02", "endDate": "2026-01-03"},
        headers=HEADERS,
    )
    assert response.status_code == 200
    shifts = response.json()
    assert [shift["date"] for shift in shifts] == ["2026-01-03"]
    assert shifts[0]["employee"]["name"] == "Alice"
    bad = client.get(f"/api/v1/shifts/employee/{employee_id}", params={"startDate": "soon"}, headers=HEADERS)
    assert bad.status_code == 400


def test_bulk_create_is_atomic(client) -> None:
    alice = _employee(client, "Alice")
    bruno = _employee(client, "Bruno")
    ok = client.post(
        "/api/v1/shifts/bulk",
        json={"shifts": [_shift(alice), _shift(bruno, start="15:00", end="22:00", kind="AFTERNOON")]},
        headers=HEADERS,
    )
    assert ok.status_code == 201
    assert len(ok.json()) == 2

    rejected = client.post(
        "/api/v1/shifts/bulk",
        json={"shifts": [_shift(bruno, date="2026-01-02"), _shift(alice, start="12:00", end="13:00")]},
        headers=HEADERS,
    )
    assert rejected.status_code == 409
    assert len(client.get("/api/v1/shifts", headers=HEADERS).json()) == 2


def test_bulk_sibling_check_follows_settings(client) -> None:
    alice = _employee(client)
    batch = {"shifts": [_shift(alice), _shift(alice, start="12:00", end="18:00", kind="AFTERNOON")]}
    assert client.post("/api/v1/shifts/bulk", json=batch, headers=HEADERS).status_code == 409

    settings = client.put(
        "/api/v1/settings/schedule",
        json={"bulk": {"check_within_batch": False}, "actor": "owner"},
        headers=HEADERS,
    )
    assert settings.status_code == 200
    assert settings.json()["bulk"] == {"check_within_batch": False}
    assert client.post("/api/v1/shifts/bulk", json=batch, headers=HEADERS).status_code == 201

    reset = client.delete("/api/v1/settings/schedule", headers=HEADERS)
    assert reset.json()["bulk"] == {"check_within_batch": True}


def test_hourly_view_uses_configured_slots(client) -> None:
    alice = _employee(client)
    client.post("/api/v1/shifts", json=_shift(alice, date="2025-12-29", start="11:00", end="13:00"), headers=HEADERS)
    client.put(
        "/api/v1/settings/schedule",
        json={"hourly_slots": [{"id": "lunch", "startTime": "12:00", "endTime": "14:00"}]},
        headers=HEADERS,
    )
    response = client.get("/api/v1/shifts/weekly/hourly?week=1&year=2026", headers=HEADERS)
    assert response.status_code == 200
    monday = response.json()["days"][0]
    assert [slot["id"] for slot in monday["slots"]] == ["lunch"]
    assert monday["slots"][0]["employees"][0]["employeeName"] == "Alice"


def test_invalid_settings_are_rejected(client) -> None:
    response = client.put("/api/v1/settings/schedule", json={"hourly_slots": []}, headers=HEADERS)
    assert response.status_code == 400
    assert response.json()["field"] == "hourly_slots"


def test_settings_reject_string_flags_and_unknown_keys(client) -> None:
    response = client.put("/api/v1/settings/schedule", json={"bulk": {"check_within_batch": "false"}}, headers=HEADERS)
    assert response.status_code == 400
    assert response.json()["field"] == "bulk"
    response = client.put(
        "/api/v1/settings/schedule",
        json={"hourlySlots": [{"startTime": "25:00", "endTime": "04:00"}]},
        headers=HEADERS,
    )
    assert response.status_code == 400
    assert response.json()["field"] == "hourlySlots"
    assert client.get("/api/v1/settings/schedule", headers=HEADERS).json()["bulk"] == {"check_within_batch": True}


def test_employee_active_flag_must_be_boolean(client) -> None:
    employee_id = _employee(client)
    response = client.put(f"/api/v1/employees/{employee_id}", json={"isActive": "false"}, headers=HEADERS)
    assert response.status_code == 400
    assert response.json()["field"] == "isActive"
    assert [employee["id"] for employee in client.get("/api/v1/employees", headers=HEADERS).json()] == [employee_id]


def test_employee_endpoints(client) -> None:
    employee_id = _employee(client)
    client.post("/api/v1/shifts", json=_shift(employee_id, start="22:00", end="06:00", kind="NIGHT"), headers=HEADERS)

    assert client.get(f"/api/v1/employees/{employee_id}", headers=HEADERS).json()["name"] == "Alice"
    assert client.get(f"/api/v1/employees/{employee_id}", headers={"X-Restaurant-Id": "r2"}).status_code == 404

    updated = client.put(f"/api/v1/employees/{employee_id}", json={"position": "Sous Chef"}, headers=HEADERS)
    assert updated.json()["position"] == "Sous Chef"

    stats = client.get(f"/api/v1/employees/{employee_id}/stats", headers=HEADERS).json()
    assert stats == {"employeeId": employee_id, "totalHours": 8.0, "totalShifts": 1, "daysOff": 0}

    assert client.delete(f"/api/v1/employees/{employee_id}", headers=HEADERS).json()["isActive"] is False
    assert client.get("/api/v1/employees", headers=HEADERS).json() == []
    assert len(client.get("/api/v1/employees?includeInactive=true", headers=HEADERS).json()) == 1
    response = client.post("/api/v1/shifts", json=_shift(employee_id, date="2026-01-02"), headers=HEADERS)
    assert response.status_code == 404
    assert client.get("/api/v1/employees/missing/stats", headers=HEADERS).status_code == 404
