"""Tests for appointment and doctor endpoints."""

from datetime import UTC, datetime
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.locks import doctor_lock_key
from app.dependencies import get_appointment_service
from app.main import app


def at_ten(day: int = 20) -> datetime:
    return datetime(2025, 10, day, 10, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    """Test health check endpoint."""
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data


@pytest.mark.asyncio
async def test_ping(client: AsyncClient) -> None:
    """Test ping endpoint and request ID propagation."""
    response = await client.get("/api/v1/ping", headers={"X-Request-ID": "req-123"})
    assert response.status_code == 200
    assert response.json() == {"message": "pong"}
    assert response.headers["X-Request-ID"] == "req-123"


@pytest.mark.asyncio
async def test_create_appointment(client: AsyncClient, auth_headers: dict, booking_data: dict) -> None:
    """Test creating an appointment."""
    response = await client.post(
        "/api/v1/appointments/",
        json=booking_data,
        headers=auth_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "scheduled"
    assert data["appointment_number"] == "APT-2025-00001"
    assert data["scheduled_time"] == "10:00"
    assert data["doctor_id"] == booking_data["doctor_id"]
    assert "id" in data


@pytest.mark.asyncio
async def test_create_appointment_conflict(client: AsyncClient, auth_headers: dict, booking_data: dict) -> None:
    """Test booking a taken slot."""
    first = await client.post("/api/v1/appointments/", json=booking_data, headers=auth_headers)
    assert first.status_code == 201

    overlapping = {**booking_data, "scheduled_time": "10:15"}
    response = await client.post("/api/v1/appointments/", json=overlapping, headers=auth_headers)

    assert response.status_code == 409
    data = response.json()
    assert data["error"] == "SchedulingConflictException"
    assert data["message"] == "Doctor is not available at this time slot"


@pytest.mark.asyncio
async def test_create_appointment_back_to_back(client: AsyncClient, auth_headers: dict, booking_data: dict) -> None:
    """Test an appointment may start when the previous one ends."""
    await client.post("/api/v1/appointments/", json=booking_data, headers=auth_headers)

    response = await client.post(
        "/api/v1/appointments/",
        json={**booking_data, "scheduled_time": "10:30"},
        headers=auth_headers,
    )
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_create_appointment_lock_busy(
    client: AsyncClient,
    auth_headers: dict,
    booking_data: dict,
    service,
) -> None:
    """Test a held doctor lock answers 503 with Retry-After."""
    service.lock_manager.retry_count = 1

    async with service.lock_manager.acquire(doctor_lock_key(booking_data["doctor_id"])):
        response = await client.post("/api/v1/appointments/", json=booking_data, headers=auth_headers)

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "1"
    assert response.json()["message"] == "Schedule is busy, please try again"


@pytest.mark.asyncio
async def test_create_appointment_unknown_doctor(client: AsyncClient, auth_headers: dict, booking_data: dict) -> None:
    """Test booking with a doctor that does not exist."""
    response = await client.post(
        "/api/v1/appointments/",
        json={**booking_data, "doctor_id": str(uuid4())},
        headers=auth_headers,
    )
    assert response.status_code == 404
    assert response.json()["message"] == "Doctor not found"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "override",
    [
        {"scheduled_time": "25:00"},
        {"scheduled_time": "9:00"},
        {"duration": 0},
        {"duration": -30},
        {"type": "surgery"},
    ],
)
async def test_create_appointment_invalid(
    client: AsyncClient, auth_headers: dict, booking_data: dict, override: dict
) -> None:
    """Test malformed bookings are rejected before scheduling."""
    response = await client.post(
        "/api/v1/appointments/",
        json={**booking_data, **override},
        headers=auth_headers,
    )
    assert response.status_code == 422
    assert response.json()["error"] == "ValidationError"


@pytest.mark.asyncio
async def test_requires_authentication(service, booking_data: dict) -> None:
    """Test protected endpoints reject missing or invalid tokens."""
    app.dependency_overrides[get_appointment_service] = lambda: service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        missing = await client.post("/api/v1/appointments/", json=booking_data)
        invalid = await client.post(
            "/api/v1/appointments/",
            json=booking_data,
            headers={"Authorization": "Bearer not-a-jwt"},
        )

    app.dependency_overrides.clear()

    assert missing.status_code in (401, 403)
    assert invalid.status_code == 401


@pytest.mark.asyncio
async def test_list_appointments(client: AsyncClient, auth_headers: dict, booking_data: dict) -> None:
    """Test listing appointments."""
    await client.post("/api/v1/appointments/", json=booking_data, headers=auth_headers)
    await client.post(
        "/api/v1/appointments/",
        json={**booking_data, "scheduled_time": "09:00"},
        headers=auth_headers,
    )

    response = await client.get(
        "/api/v1/appointments/",
        params={"doctor_id": booking_data["doctor_id"], "date": "2025-10-20"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert data["pages"] == 1
    assert [item["scheduled_time"] for item in data["items"]] == ["09:00", "10:00"]


@pytest.mark.asyncio
async def test_get_appointment(client: AsyncClient, auth_headers: dict, booking_data: dict) -> None:
    """Test getting a specific appointment."""
    create_response = await client.post("/api/v1/appointments/", json=booking_data, headers=auth_headers)
    appointment_id = create_response.json()["id"]

    response = await client.get(f"/api/v1/appointments/{appointment_id}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["id"] == appointment_id


@pytest.mark.asyncio
async def test_get_appointment_not_found(client: AsyncClient, auth_headers: dict) -> None:
    """Test getting an unknown appointment."""
    response = await client.get(f"/api/v1/appointments/{uuid4()}", headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_reschedule_appointment(client: AsyncClient, auth_headers: dict, booking_data: dict) -> None:
    """Test moving an appointment to a free time."""
    create_response = await client.post("/api/v1/appointments/", json=booking_data, headers=auth_headers)
    appointment_id = create_response.json()["id"]

    response = await client.put(
        f"/api/v1/appointments/{appointment_id}",
        json={"scheduled_time": "14:00", "notes": "Moved to afternoon"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["scheduled_time"] == "14:00"
    assert data["notes"] == "Moved to afternoon"


@pytest.mark.asyncio
async def test_update_rejects_participant_change(
    client: AsyncClient, auth_headers: dict, booking_data: dict
) -> None:
    """Test the doctor of an appointment cannot be swapped by update."""
    create_response = await client.post("/api/v1/appointments/", json=booking_data, headers=auth_headers)
    appointment_id = create_response.json()["id"]

    response = await client.put(
        f"/api/v1/appointments/{appointment_id}",
        json={"doctor_id": str(uuid4())},
        headers=auth_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_update_appointment_status(client: AsyncClient, auth_headers: dict, booking_data: dict) -> None:
    """Test updating appointment status."""
    create_response = await client.post("/api/v1/appointments/", json=booking_data, headers=auth_headers)
    appointment_id = create_response.json()["id"]

    response = await client.patch(
        f"/api/v1/appointments/{appointment_id}/status",
        json={"status": "confirmed"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"

    response = await client.patch(
        f"/api/v1/appointments/{appointment_id}/status",
        json={"status": "scheduled"},
        headers=auth_headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_cancel_appointment(client: AsyncClient, auth_headers: dict, booking_data: dict) -> None:
    """Test cancelling an appointment frees its slot."""
    create_response = await client.post("/api/v1/appointments/", json=booking_data, headers=auth_headers)
    appointment_id = create_response.json()["id"]

    response = await client.patch(
        f"/api/v1/appointments/{appointment_id}/cancel",
        json={"reason": "Feeling better"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "cancelled"
    assert data["cancellation_reason"] == "Feeling better"

    again = await client.patch(
        f"/api/v1/appointments/{appointment_id}/cancel",
        json={},
        headers=auth_headers,
    )
    assert again.status_code == 400

    rebook = await client.post("/api/v1/appointments/", json=booking_data, headers=auth_headers)
    assert rebook.status_code == 201


@pytest.mark.asyncio
async def test_delete_appointment(client: AsyncClient, auth_headers: dict, booking_data: dict) -> None:
    """Test deleting an appointment."""
    create_response = await client.post("/api/v1/appointments/", json=booking_data, headers=auth_headers)
    appointment_id = create_response.json()["id"]

    response = await client.delete(f"/api/v1/appointments/{appointment_id}", headers=auth_headers)
    assert response.status_code == 204

    get_response = await client.get(f"/api/v1/appointments/{appointment_id}", headers=auth_headers)
    assert get_response.status_code == 404


@pytest.mark.asyncio
async def test_check_availability(client: AsyncClient, auth_headers: dict, booking_data: dict) -> None:
    """Test the slot check before and after booking."""
    payload = {
        "doctor_id": booking_data["doctor_id"],
        "scheduled_date": "2025-10-20",
        "scheduled_time": "10:00",
        "duration": 30,
    }

    before = await client.post("/api/v1/appointments/check-availability", json=payload, headers=auth_headers)
    assert before.json()["available"] is True

    await client.post("/api/v1/appointments/", json=booking_data, headers=auth_headers)

    after = await client.post("/api/v1/appointments/check-availability", json=payload, headers=auth_headers)
    assert after.status_code == 200
    assert after.json() == {"available": False, "message": "Time slot is not available"}


@pytest.mark.asyncio
async def test_doctor_availability(client: AsyncClient, auth_headers: dict, booking_data: dict) -> None:
    """Test a booking removes exactly one slot from the day."""
    url = f"/api/v1/doctors/{booking_data['doctor_id']}/availability"

    before = await client.get(url, params={"date": "2025-10-20"}, headers=auth_headers)
    assert before.status_code == 200
    assert before.json()["available_slots"] == 16

    await client.post("/api/v1/appointments/", json=booking_data, headers=auth_headers)

    after = await client.get(url, params={"date": "2025-10-20"}, headers=auth_headers)
    data = after.json()
    assert data["total_slots"] == 16
    assert data["available_slots"] == 15
    assert data["booked_slots"] == 1
    assert "10:00" not in [slot["time"] for slot in data["slots"]]


@pytest.mark.asyncio
async def test_doctor_availability_unknown_doctor(client: AsyncClient, auth_headers: dict) -> None:
    """Test availability of a doctor that does not exist."""
    response = await client.get(
        f"/api/v1/doctors/{uuid4()}/availability",
        params={"date": "2025-10-20"},
        headers=auth_headers,
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_doctor_availability_requires_date(client: AsyncClient, auth_headers: dict) -> None:
    """Test the date query parameter is mandatory."""
    response = await client.get(f"/api/v1/doctors/{uuid4()}/availability", headers=auth_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_my_schedule(client: AsyncClient, auth_headers: dict, repository, test_user: dict, patient: dict) -> None:
    """Test a doctor sees their own day."""
    repository.add_doctor(id=test_user["id"])
    repository.add_appointment(test_user["id"], patient["id"], at_ten())
    repository.add_appointment(test_user["id"], patient["id"], at_ten(21))

    response = await client.get(
        "/api/v1/appointments/my-schedule",
        params={"date": "2025-10-20"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["total"] == 1


@pytest.mark.asyncio
async def test_my_appointments_without_patient_record(client: AsyncClient, auth_headers: dict) -> None:
    """Test a user with no linked patient record."""
    response = await client.get("/api/v1/appointments/my-appointments", headers=auth_headers)
    assert response.status_code == 404
    assert response.json()["message"] == "Patient record not found"
