"""
Integration tests for the REST API endpoints: auth, fleet, availability
and bookings.

Runs the real app against a SQLite file.  ``client`` bypasses token
checks and acts as ``caller.principal``; ``anon_client`` goes through
the real auth dependency.
"""

from __future__ import annotations

from datetime import date, timedelta
from pathlib import Path

import pytest
from httpx import AsyncClient

from backoffice.config import settings
from backoffice.domain.enums import BookingStatus, UserRole
from backoffice.services.auth import Principal

STAFF = Principal(id=2, email="staff@test.com", role=UserRole.STAFF)
READONLY = Principal(id=3, email="viewer@test.com", role=UserRole.READONLY)

CAR = {
    "plate_number": "ABC-123",
    "make": "Toyota",
    "model": "Yaris",
    "year": 2021,
    "class": "Economy",
    "base_daily_rate": 35,
}


async def _login(client: AsyncClient, email="admin@test.com", password="secret-pass") -> str:
    resp = await client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()["token"]


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ── Health / auth ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/api/admin/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_missing_credentials_is_401(anon_client: AsyncClient):
    resp = await anon_client.get("/api/cars")
    assert resp.status_code == 401
    assert resp.json()["code"] == "unauthorized"


@pytest.mark.asyncio
async def test_login_and_me(anon_client: AsyncClient):
    resp = await anon_client.post(
        "/api/auth/login", json={"email": "admin@test.com", "password": "secret-pass"}
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["user"]["role"] == "admin"
    assert "token" in resp.cookies

    me = await anon_client.get("/api/auth/me", headers=_bearer(body["token"]))
    assert me.status_code == 200
    assert me.json() == {"id": 1, "email": "admin@test.com", "role": "admin"}


@pytest.mark.asyncio
async def test_wrong_password(anon_client: AsyncClient):
    resp = await anon_client.post(
        "/api/auth/login", json={"email": "admin@test.com", "password": "nope"}
    )
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid email or password"


@pytest.mark.asyncio
async def test_garbage_token_is_401(anon_client: AsyncClient):
    resp = await anon_client.get("/api/auth/me", headers=_bearer("not-a-token"))
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_change_password(anon_client: AsyncClient):
    token = await _login(anon_client, "staff@test.com")
    resp = await anon_client.put(
        "/api/auth/profile",
        json={"current_password": "secret-pass", "new_password": "new-secret"},
        headers=_bearer(token),
    )
    assert resp.status_code == 200
    await _login(anon_client, "staff@test.com", "new-secret")

    bad = await anon_client.put(
        "/api/auth/profile",
        json={"current_password": "wrong", "new_password": "whatever"},
        headers=_bearer(token),
    )
    assert bad.status_code == 401


@pytest.mark.asyncio
async def test_api_key_acts_as_staff(anon_client: AsyncClient):
    admin = _bearer(await _login(anon_client))
    created = await anon_client.post(
        "/api/integrations/api-keys", json={"name": "erp"}, headers=admin
    )
    assert created.status_code == 201
    key = created.json()["token"]

    listed = await anon_client.get("/api/integrations/api-keys", headers=admin)
    assert [k["name"] for k in listed.json()] == ["erp"]
    assert "token" not in listed.json()[0]

    headers = {"X-API-Key": key}
    me = await anon_client.get("/api/auth/me", headers=headers)
    assert me.json() == {"id": None, "email": "api:erp", "role": "staff"}

    assert (await anon_client.post("/api/cars", json=CAR, headers=headers)).status_code == 201
    assert (await anon_client.get("/api/users", headers=headers)).status_code == 403
    profile = await anon_client.put(
        "/api/auth/profile",
        json={"current_password": "x", "new_password": "y" * 8},
        headers=headers,
    )
    assert profile.status_code == 403

    revoked = await anon_client.delete(
        f"/api/integrations/api-keys/{created.json()['id']}", headers=admin
    )
    assert revoked.status_code == 200
    assert (await anon_client.get("/api/auth/me", headers=headers)).status_code == 401


# ── Roles ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_readonly_cannot_write(client: AsyncClient, caller):
    caller.principal = READONLY
    assert (await client.get("/api/cars")).status_code == 200
    resp = await client.post("/api/cars", json=CAR)
    assert resp.status_code == 403
    assert resp.json() == {"detail": "Forbidden", "code": "forbidden"}


@pytest.mark.asyncio
async def test_staff_cannot_administer(client: AsyncClient, caller, make_car):
    car = await make_car()
    caller.principal = STAFF
    assert (await client.post("/api/cars/bulk-delete", json={"ids": [car.id]})).status_code == 403
    assert (await client.delete(f"/api/cars/{car.id}")).status_code == 403
    assert (await client.get("/api/audit")).status_code == 403
    assert (await client.get("/api/settings")).status_code == 403


# ── Cars ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_and_get_car(client: AsyncClient):
    resp = await client.post("/api/cars", json=CAR)
    assert resp.status_code == 201
    car = resp.json()
    assert car["class"] == "Economy"
    assert car["status"] == "active"
    assert car["images"] == []

    got = await client.get(f"/api/cars/{car['id']}")
    assert got.status_code == 200
    assert got.json()["plate_number"] == "ABC-123"


@pytest.mark.asyncio
async def test_duplicate_plate_is_409(client: AsyncClient):
    await client.post("/api/cars", json=CAR)
    resp = await client.post("/api/cars", json=CAR)
    assert resp.status_code == 409
    assert resp.json()["code"] == "conflict"


@pytest.mark.asyncio
async def test_year_out_of_range_is_422(client: AsyncClient):
    resp = await client.post("/api/cars", json={**CAR, "year": 1850})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_car_not_found(client: AsyncClient):
    resp = await client.get("/api/cars/9999")
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Car not found", "code": "not_found"}


@pytest.mark.asyncio
async def test_car_with_branch(client: AsyncClient):
    branch = await client.post("/api/branches", json={"name": "Airport"})
    assert branch.status_code == 201
    resp = await client.post("/api/cars", json={**CAR, "branch_id": branch.json()["id"]})
    assert resp.json()["branch_name"] == "Airport"

    missing = await client.post("/api/cars", json={**CAR, "plate_number": "X-1", "branch_id": 999})
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_update_car(client: AsyncClient, make_car):
    car = await make_car(notes="needs wash")
    other = await make_car()

    resp = await client.put(
        f"/api/cars/{car.id}", json={"base_daily_rate": 99, "notes": None, "class": "SUV"}
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["base_daily_rate"] == 99
    assert body["notes"] is None
    assert body["class"] == "SUV"

    dup = await client.put(f"/api/cars/{car.id}", json={"plate_number": other.plate_number})
    assert dup.status_code == 409

    empty = await client.put(f"/api/cars/{car.id}", json={})
    assert empty.status_code == 422
    assert empty.json()["code"] == "validation_error"


@pytest.mark.asyncio
async def test_list_cars_filters(client: AsyncClient, make_car):
    await make_car(car_class="SUV", plate_number="S-1")
    await make_car(car_class="Economy", plate_number="E-1")
    resp = await client.get("/api/cars", params={"class": "SUV"})
    assert [c["plate_number"] for c in resp.json()] == ["S-1"]


@pytest.mark.asyncio
async def test_archive_refused_while_booked(client: AsyncClient, make_car, make_booking):
    car = await make_car()
    await make_booking(car, date.today(), status=BookingStatus.CONFIRMED)

    single = await client.delete(f"/api/cars/{car.id}")
    assert single.status_code == 409
    bulk = await client.post("/api/cars/bulk-delete", json={"ids": [car.id]})
    assert bulk.status_code == 409


@pytest.mark.asyncio
async def test_archive_and_bulk_archive(client: AsyncClient, make_car, make_booking):
    a, b, c = await make_car(), await make_car(), await make_car()
    await make_booking(a, date.today(), status=BookingStatus.COMPLETED)

    single = await client.delete(f"/api/cars/{a.id}")
    assert single.status_code == 200
    assert single.json()["status"] == "inactive"

    bulk = await client.post("/api/cars/bulk-delete", json={"ids": [b.id, c.id, b.id]})
    assert bulk.json() == {"archived": 2}
    statuses = {car["id"]: car["status"] for car in (await client.get("/api/cars")).json()}
    assert statuses == {a.id: "inactive", b.id: "inactive", c.id: "inactive"}


@pytest.mark.asyncio
async def test_upload_car_images(client: AsyncClient, make_car):
    car = await make_car()
    resp = await client.post(
        f"/api/cars/{car.id}/images",
        files=[
            ("images", ("front.jpg", b"jpeg-bytes", "image/jpeg")),
            ("images", ("back.jpg", b"more-bytes", "image/jpeg")),
        ],
    )
    assert resp.status_code == 201
    urls = [img["url_path"] for img in resp.json()]
    assert len(urls) == 2
    assert all(u.startswith("/uploads/cars/") for u in urls)

    detail = await client.get(f"/api/cars/{car.id}")
    assert detail.json()["images"] == urls

    served = await client.get(urls[0])
    assert served.status_code == 200
    assert served.content == b"jpeg-bytes"


@pytest.mark.asyncio
async def test_too_many_images(client: AsyncClient, make_car):
    car = await make_car()
    files = [("images", (f"{i}.jpg", b"x", "image/jpeg")) for i in range(11)]
    resp = await client.post(f"/api/cars/{car.id}/images", files=files)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_oversized_image(client: AsyncClient, make_car, monkeypatch):
    monkeypatch.setattr(settings, "max_image_bytes", 4)
    car = await make_car()
    resp = await client.post(
        f"/api/cars/{car.id}/images", files=[("images", ("big.jpg", b"12345", "image/jpeg"))]
    )
    assert resp.status_code == 413
    assert resp.json()["code"] == "payload_too_large"


@pytest.mark.asyncio
async def test_vehicle_documents(client: AsyncClient, caller, make_car):
    car = await make_car()
    resp = await client.post(
        f"/api/cars/{car.id}/documents",
        files={"document": ("registration.pdf", b"%PDF-1.4", "application/pdf")},
        data={"document_type": "registration", "title": "Registration 2025",
              "expiry_date": "2026-01-31"},
    )
    assert resp.status_code == 201
    doc = resp.json()
    assert doc["file_size"] == 8
    assert doc["expiry_date"] == "2026-01-31"
    assert doc["url_path"].startswith(f"/uploads/vehicles/{car.id}_")
    stored = Path(settings.upload_dir) / doc["url_path"].removeprefix("/uploads/")
    assert stored.exists()

    listed = await client.get(f"/api/cars/{car.id}/documents")
    assert [d["id"] for d in listed.json()] == [doc["id"]]

    caller.principal = READONLY
    assert (await client.get(f"/api/cars/{car.id}/documents")).status_code == 403

    caller.principal = STAFF
    deleted = await client.delete(f"/api/cars/documents/{doc['id']}")
    assert deleted.status_code == 200
    assert not stored.exists()
    assert (await client.get(f"/api/cars/{car.id}/documents")).json() == []


# ── Availability ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_availability_half_open(client: AsyncClient, make_car, make_booking):
    car = await make_car(base_daily_rate=50)
    await make_booking(car, date(2025, 3, 1), days=4, status=BookingStatus.CONFIRMED)

    overlapping = await client.get(
        "/api/availability", params={"start": "2025-03-04", "end": "2025-03-06"}
    )
    assert overlapping.status_code == 200
    assert overlapping.json() == []

    adjacent = await client.get(
        "/api/availability", params={"start": "2025-03-05", "end": "2025-03-07"}
    )
    [found] = adjacent.json()
    assert found["id"] == car.id
    assert found["class"] == "Economy"
    assert (found["daily_rate"], found["days"], found["estimated_total"]) == (50, 2, 100)


@pytest.mark.asyncio
async def test_availability_invalid_range(client: AsyncClient):
    resp = await client.get(
        "/api/availability", params={"start": "2025-03-05", "end": "2025-03-05"}
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_error"


@pytest.mark.asyncio
async def test_major_incident_hides_car_until_resolved(client: AsyncClient, make_car):
    car = await make_car()
    start = date.today() + timedelta(days=200)
    params = {"start": start.isoformat(), "end": (start + timedelta(days=2)).isoformat()}

    incident = await client.post(
        "/api/incidents", json={"car_id": car.id, "severity": "major"}
    )
    assert incident.status_code == 201
    assert (await client.get("/api/availability", params=params)).json() == []

    await client.put(
        f"/api/incidents/{incident.json()['id']}/status", json={"status": "resolved"}
    )
    assert [c["id"] for c in (await client.get("/api/availability", params=params)).json()] == [
        car.id
    ]


# ── Bookings ──────────────────────────────────────────────────────────


def _booking(car_id: int, start="2025-05-01", end="2025-05-04", **kw) -> dict:
    return {
        "car_id": car_id,
        "customer_name": "Jane Doe",
        "start_date": start,
        "end_date": end,
        **kw,
    }


@pytest.mark.asyncio
async def test_create_booking(client: AsyncClient, make_car):
    car = await make_car()
    resp = await client.post(
        "/api/bookings",
        json=_booking(car.id, status="reserved", total_price=120,
                      extras=[{"extra_name": "GPS", "extra_price": 4}]),
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "reserved"
    assert body["plate_number"] == car.plate_number
    assert body["car_label"] == "Toyota Corolla"
    assert body["extras"] == [{"extra_name": "GPS", "extra_price": 4.0}]

    got = await client.get(f"/api/bookings/{body['id']}")
    assert got.json()["id"] == body["id"]


@pytest.mark.asyncio
async def test_create_booking_defaults_to_draft(client: AsyncClient, make_car):
    car = await make_car()
    resp = await client.post("/api/bookings", json=_booking(car.id))
    assert resp.json()["status"] == "draft"


@pytest.mark.asyncio
async def test_overlapping_booking_is_409(client: AsyncClient, make_car, make_booking):
    car = await make_car()
    await make_booking(car, date(2025, 5, 1))
    resp = await client.post(
        "/api/bookings", json=_booking(car.id, start="2025-05-03", end="2025-05-06")
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "car_unavailable"


@pytest.mark.asyncio
async def test_booking_during_maintenance_is_409(client: AsyncClient, make_car):
    car = await make_car()
    block = await client.post(
        "/api/maintenance",
        json={"car_id": car.id, "start_date": "2025-04-10", "end_date": "2025-04-12"},
    )
    assert block.status_code == 201
    resp = await client.post(
        "/api/bookings", json=_booking(car.id, start="2025-04-11", end="2025-04-13")
    )
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_booking_inverted_range_is_422(client: AsyncClient, make_car):
    car = await make_car()
    resp = await client.post(
        "/api/bookings", json=_booking(car.id, start="2025-05-04", end="2025-05-01")
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_extend_active_booking(client: AsyncClient, make_car, make_booking):
    car = await make_car()
    b1 = await make_booking(car, date(2025, 5, 1), status=BookingStatus.ACTIVE)
    await make_booking(car, date(2025, 5, 10))

    ok = await client.put(f"/api/bookings/{b1.id}", json={"end_date": "2025-05-09"})
    assert ok.status_code == 200
    assert ok.json()["end_date"] == "2025-05-09"

    clash = await client.put(f"/api/bookings/{b1.id}", json={"end_date": "2025-05-11"})
    assert clash.status_code == 409
    assert (await client.get(f"/api/bookings/{b1.id}")).json()["end_date"] == "2025-05-09"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [BookingStatus.CANCELLED, BookingStatus.COMPLETED])
async def test_terminal_booking_is_locked_before_validation(
    client: AsyncClient, make_car, make_booking, status
):
    car = await make_car()
    b = await make_booking(car, date(2025, 5, 1), status=status)

    for payload in ({"notes": "late"}, {"end_date": "not-a-date"}, {"total_price": -5}):
        resp = await client.put(f"/api/bookings/{b.id}", json=payload)
        assert resp.status_code == 409
        assert resp.json()["code"] == "booking_locked"

    resp = await client.put(f"/api/bookings/{b.id}/status", json={"status": "bogus"})
    assert resp.status_code == 409
    assert resp.json()["code"] == "booking_locked"


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [[], ["x"], "cancelled", None])
async def test_terminal_booking_is_locked_for_non_object_bodies(
    client: AsyncClient, make_car, make_booking, payload
):
    car = await make_car()
    b = await make_booking(car, date(2025, 5, 1), status=BookingStatus.CANCELLED)

    for url in (f"/api/bookings/{b.id}", f"/api/bookings/{b.id}/status"):
        resp = await client.put(url, json=payload)
        assert resp.status_code == 409
        assert resp.json()["code"] == "booking_locked"


@pytest.mark.asyncio
async def test_non_object_body_on_open_booking_is_422(
    client: AsyncClient, make_car, make_booking
):
    car = await make_car()
    b = await make_booking(car, date(2025, 5, 1))
    resp = await client.put(f"/api/bookings/{b.id}/status", json=["confirmed"])
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_invalid_update_payload_is_422(client: AsyncClient, make_car, make_booking):
    car = await make_car()
    b = await make_booking(car, date(2025, 5, 1))
    resp = await client.put(f"/api/bookings/{b.id}", json={"end_date": "not-a-date"})
    assert resp.status_code == 422
    resp = await client.put(f"/api/bookings/{b.id}/status", json={"status": "bogus"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_status_changes(client: AsyncClient, make_car, make_booking):
    car = await make_car()
    b = await make_booking(car, date(2025, 5, 1), status=BookingStatus.RESERVED)
    for status in ("confirmed", "active", "completed"):
        resp = await client.put(f"/api/bookings/{b.id}/status", json={"status": status})
        assert resp.status_code == 200
        assert resp.json()["status"] == status


@pytest.mark.asyncio
async def test_list_bookings_filters(client: AsyncClient, make_car, make_booking):
    car, other = await make_car(), await make_car()
    early = await make_booking(car, date(2025, 1, 1))
    late = await make_booking(car, date(2025, 6, 1), status=BookingStatus.DRAFT)
    await make_booking(other, date(2025, 6, 1))

    by_car = await client.get("/api/bookings", params={"car_id": car.id})
    assert [b["id"] for b in by_car.json()] == [late.id, early.id]

    in_window = await client.get(
        "/api/bookings", params={"car_id": car.id, "from": "2025-05-01", "to": "2025-07-01"}
    )
    assert [b["id"] for b in in_window.json()] == [late.id]

    drafts = await client.get("/api/bookings", params={"status": "draft"})
    assert [b["id"] for b in drafts.json()] == [late.id]


@pytest.mark.asyncio
async def test_booking_writes_are_audited(client: AsyncClient, make_car):
    car = await make_car()
    created = (await client.post("/api/bookings", json=_booking(car.id))).json()
    await client.put(f"/api/bookings/{created['id']}/status", json={"status": "reserved"})

    entries = (await client.get("/api/audit")).json()
    assert [(e["action"], e["entity_type"]) for e in entries[:2]] == [
        ("status_change", "booking"),
        ("create", "booking"),
    ]
    assert entries[0]["user_email"] == "admin@test.com"
    assert entries[0]["metadata"] == {"status": "reserved"}
