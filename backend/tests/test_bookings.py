"""
Tests for booking endpoints and the booking -> reservation coordination.
"""

import pytest
from httpx import AsyncClient

from lumiq.core.security import Caller, ROLE_STUDENT
from lumiq.models.dorm import Dorm
from lumiq.schemas.booking import BookingCreate
from lumiq.services import room_service
from lumiq.services.booking_service import create_booking, get_booking
from lumiq.services.reservation_service import attempt_reserve_after_booking


def booking_payload(dorm_id: int, room_id: int, **extra) -> dict:
    payload = {
        "dormId": dorm_id,
        "roomId": room_id,
        "moveInDate": "2026-11-01",
        "stayDuration": 6,
        "durationType": "months",
        "paymentMethod": "card",
        "bookingFeePaid": 1000,
        "totalAmount": 28000,
    }
    payload.update(extra)
    return payload


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_booking_reserves_room(client: AsyncClient, student_headers, student, room):
    """A free room is reserved for the student and the booking is confirmed."""
    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(room.dorm_id, room.id),
        headers=student_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "Confirmed"
    assert data["user_id"] == student.id
    assert data["move_in_date"] == "2026-11-01"
    assert data["reservation_warning"] is None

    room_response = await client.get(f"/api/v1/rooms/{room.id}")
    room_data = room_response.json()
    assert room_data["status"] == "Reserved"
    assert room_data["current_resident_id"] == student.id
    assert room_data["expected_move_in_date"] == "2026-11-01"


@pytest.mark.asyncio
async def test_create_booking_for_taken_room_stays_pending(
    client: AsyncClient, student_headers, make_room, other_student,
):
    """The booking is kept as Pending with a warning; the holder keeps the room."""
    taken = await make_room("601", status="Reserved", current_resident_id=other_student.id)

    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(taken.dorm_id, taken.id),
        headers=student_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "Pending"
    assert "not reserved" in data["reservation_warning"]

    room_data = (await client.get(f"/api/v1/rooms/{taken.id}")).json()
    assert room_data["status"] == "Reserved"
    assert room_data["current_resident_id"] == other_student.id


@pytest.mark.asyncio
async def test_room_taken_between_booking_and_reservation(session_factory, student, other_student, room):
    """
    Another flow reserves the room after the booking is stored but before
    the coordinator runs: the booking stays Pending and nothing is raised.
    """
    caller = Caller(user_id=student.id, role=ROLE_STUDENT)

    async with session_factory() as session:
        booking = await create_booking(
            session, caller, BookingCreate(dorm_id=room.dorm_id, room_id=room.id),
        )

        async with session_factory() as concurrent:
            await room_service.reserve_room(concurrent, room.id, other_student.id)
            await concurrent.commit()

        outcome = await attempt_reserve_after_booking(session, booking)

    assert outcome.confirmed is False
    assert outcome.error_code == "RoomNotAvailable"
    assert outcome.booking.status == "Pending"

    async with session_factory() as check:
        stored = await get_booking(check, booking.id)
        assert stored.status == "Pending"
        final_room = await room_service.get_room(check, room.id)
        assert final_room.status == "Reserved"
        assert final_room.current_resident_id == other_student.id


@pytest.mark.asyncio
async def test_create_booking_unauthenticated(client: AsyncClient, room):
    response = await client.post("/api/v1/bookings/", json=booking_payload(room.dorm_id, room.id))
    assert response.status_code == 401
    assert response.json()["error"] == "NotAuthenticated"


@pytest.mark.asyncio
async def test_admin_cannot_create_booking(client: AsyncClient, admin_headers, room):
    response = await client.post(
        "/api/v1/bookings/", json=booking_payload(room.dorm_id, room.id), headers=admin_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_create_booking_accepts_legacy_names(client: AsyncClient, student_headers, room):
    """snake_case, camelCase and the older spellings all land on the same fields."""
    response = await client.post(
        "/api/v1/bookings/",
        json={
            "dorm_id": room.dorm_id,
            "roomId": room.id,
            "expected_move_in_date": "2026-12-01",
            "booking_fees": 1500,
            "booked_date": "2026-10-01",
            "booked_time": "09:30",
        },
        headers=student_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["move_in_date"] == "2026-12-01"
    assert data["booking_fee_paid"] == 1500
    assert data["booked_at"].startswith("2026-10-01T09:30")


@pytest.mark.asyncio
async def test_create_booking_rejects_unknown_field(client: AsyncClient, student_headers, room):
    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(room.dorm_id, room.id, roomColour="blue"),
        headers=student_headers,
    )
    assert response.status_code == 422
    assert response.json()["error"] == "ValidationError"


@pytest.mark.asyncio
async def test_create_booking_rejects_client_status(client: AsyncClient, student_headers, room):
    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(room.dorm_id, room.id, status="Confirmed"),
        headers=student_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_booking_rejects_conflicting_aliases(client: AsyncClient, student_headers, room):
    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(room.dorm_id, room.id, move_in_date="2026-12-01"),
        headers=student_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_booking_room_from_other_dorm(
    client: AsyncClient, db_session, student_headers, other_admin, room,
):
    other_dorm = Dorm(name="South Hall", admin_id=other_admin.id)
    db_session.add(other_dorm)
    await db_session.commit()

    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(other_dorm.id, room.id),
        headers=student_headers,
    )
    assert response.status_code == 422
    assert response.json()["error"] == "ValidationError"


@pytest.mark.asyncio
async def test_create_booking_missing_room(client: AsyncClient, student_headers, dorm):
    response = await client.post(
        "/api/v1/bookings/", json=booking_payload(dorm.id, 9999), headers=student_headers,
    )
    assert response.status_code == 404
    assert response.json()["error"] == "RoomNotFound"


# ---------------------------------------------------------------------------
# Access and listing
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_booking_visible_to_owner_and_dorm_admin_only(
    client: AsyncClient, student, room, make_booking,
    student_headers, other_student_headers, admin_headers, other_admin_headers,
):
    booking = await make_booking(student, room)
    url = f"/api/v1/bookings/{booking.id}"

    assert (await client.get(url, headers=student_headers)).status_code == 200
    assert (await client.get(url, headers=admin_headers)).status_code == 200
    assert (await client.get(url, headers=other_student_headers)).status_code == 403
    assert (await client.get(url, headers=other_admin_headers)).status_code == 403


@pytest.mark.asyncio
async def test_get_missing_booking(client: AsyncClient, student_headers):
    response = await client.get("/api/v1/bookings/9999", headers=student_headers)
    assert response.status_code == 404
    assert response.json()["error"] == "BookingNotFound"


@pytest.mark.asyncio
async def test_list_bookings_by_role(
    client: AsyncClient, student, other_student, room, make_room, make_booking,
    student_headers, admin_headers,
):
    second = await make_room("602")
    await make_booking(student, room, status="Pending")
    await make_booking(student, second, status="Cancelled")
    await make_booking(other_student, second, status="Pending")

    own = (await client.get("/api/v1/bookings/", headers=student_headers)).json()
    assert len(own) == 2
    assert all(b["user_id"] == student.id for b in own)

    pending_only = (await client.get(
        "/api/v1/bookings/", params={"status": "Pending"}, headers=student_headers,
    )).json()
    assert [b["status"] for b in pending_only] == ["Pending"]

    dorm_wide = (await client.get("/api/v1/bookings/", headers=admin_headers)).json()
    assert len(dorm_wide) == 3


# ---------------------------------------------------------------------------
# Status changes
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_cancel_releases_reserved_room(client: AsyncClient, student_headers, room):
    created = (await client.post(
        "/api/v1/bookings/", json=booking_payload(room.dorm_id, room.id), headers=student_headers,
    )).json()
    assert created["status"] == "Confirmed"

    response = await client.post(f"/api/v1/bookings/{created['id']}/cancel", headers=student_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "Cancelled"

    room_data = (await client.get(f"/api/v1/rooms/{room.id}")).json()
    assert room_data["status"] == "Available"
    assert room_data["current_resident_id"] is None


@pytest.mark.asyncio
async def test_cancel_leaves_occupied_room(client: AsyncClient, student, student_headers, make_room, make_booking):
    occupied = await make_room("603", status="Occupied", current_resident_id=student.id)
    booking = await make_booking(student, occupied, status="Confirmed")

    response = await client.post(f"/api/v1/bookings/{booking.id}/cancel", headers=student_headers)
    assert response.status_code == 200

    room_data = (await client.get(f"/api/v1/rooms/{occupied.id}")).json()
    assert room_data["status"] == "Occupied"


@pytest.mark.asyncio
async def test_cancel_twice_conflicts(client: AsyncClient, student, student_headers, room, make_booking):
    booking = await make_booking(student, room, status="Cancelled")
    response = await client.post(f"/api/v1/bookings/{booking.id}/cancel", headers=student_headers)
    assert response.status_code == 409
    assert response.json()["error"] == "InvalidBookingTransition"


@pytest.mark.asyncio
async def test_second_booking_for_same_room_conflicts(client: AsyncClient, student_headers, room):
    first = await client.post(
        "/api/v1/bookings/", json=booking_payload(room.dorm_id, room.id), headers=student_headers,
    )
    assert first.json()["status"] == "Confirmed"

    second = await client.post(
        "/api/v1/bookings/", json=booking_payload(room.dorm_id, room.id), headers=student_headers,
    )
    assert second.status_code == 409
    assert second.json()["error"] == "DuplicateBooking"


@pytest.mark.asyncio
async def test_rebook_after_cancel_is_allowed(client: AsyncClient, student_headers, room):
    first = (await client.post(
        "/api/v1/bookings/", json=booking_payload(room.dorm_id, room.id), headers=student_headers,
    )).json()
    await client.post(f"/api/v1/bookings/{first['id']}/cancel", headers=student_headers)

    again = await client.post(
        "/api/v1/bookings/", json=booking_payload(room.dorm_id, room.id), headers=student_headers,
    )
    assert again.status_code == 201
    assert again.json()["status"] == "Confirmed"


@pytest.mark.asyncio
async def test_cancel_duplicate_keeps_room_for_confirmed_booking(
    client: AsyncClient, student, student_headers, other_student_headers, room, make_booking,
):
    """Cancelling a stray Pending duplicate must not free the room the Confirmed booking holds."""
    confirmed = (await client.post(
        "/api/v1/bookings/", json=booking_payload(room.dorm_id, room.id), headers=student_headers,
    )).json()
    assert confirmed["status"] == "Confirmed"
    duplicate = await make_booking(student, room)

    response = await client.post(f"/api/v1/bookings/{duplicate.id}/cancel", headers=student_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "Cancelled"

    room_data = (await client.get(f"/api/v1/rooms/{room.id}")).json()
    assert room_data["status"] == "Reserved"
    assert room_data["current_resident_id"] == student.id

    other = (await client.post(
        "/api/v1/bookings/", json=booking_payload(room.dorm_id, room.id), headers=other_student_headers,
    )).json()
    assert other["status"] == "Pending"
    assert other["reservation_warning"]

    kept = (await client.get(f"/api/v1/bookings/{confirmed['id']}", headers=student_headers)).json()
    assert kept["status"] == "Confirmed"


@pytest.mark.asyncio
async def test_student_cannot_confirm_own_booking(client: AsyncClient, student, student_headers, room, make_booking):
    booking = await make_booking(student, room)
    response = await client.put(
        f"/api/v1/bookings/{booking.id}", json={"status": "Confirmed"}, headers=student_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_student_updates_booking_details(client: AsyncClient, student, student_headers, room, make_booking):
    booking = await make_booking(student, room)
    response = await client.put(
        f"/api/v1/bookings/{booking.id}",
        json={"stayDuration": 12, "paymentMethod": "qr"},
        headers=student_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["stay_duration"] == 12
    assert data["payment_method"] == "qr"
    assert data["status"] == "Pending"


@pytest.mark.asyncio
async def test_booking_cannot_go_back_to_pending(client: AsyncClient, student, admin_headers, room, make_booking):
    booking = await make_booking(student, room, status="Confirmed")
    response = await client.put(
        f"/api/v1/bookings/{booking.id}", json={"status": "Pending"}, headers=admin_headers,
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_booking_update_rejects_room_change(client: AsyncClient, student, student_headers, room, make_booking):
    booking = await make_booking(student, room)
    response = await client.put(
        f"/api/v1/bookings/{booking.id}", json={"roomId": 42}, headers=student_headers,
    )
    assert response.status_code == 422


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_manual_confirm_then_retry_reservation(
    client: AsyncClient, student, admin_headers, room, make_booking,
):
    """A manual confirm leaves the room alone; the divergence is reported and retry fixes it."""
    booking = await make_booking(student, room)

    confirmed = await client.put(
        f"/api/v1/bookings/{booking.id}", json={"status": "Confirmed"}, headers=admin_headers,
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "Confirmed"
    assert (await client.get(f"/api/v1/rooms/{room.id}")).json()["status"] == "Available"

    report = (await client.get(
        "/api/v1/bookings/divergent", params={"dorm_id": room.dorm_id}, headers=admin_headers,
    )).json()
    assert [(r["booking"]["id"], r["reason"]) for r in report] == [
        (booking.id, "confirmed_room_released"),
    ]

    retried = await client.post(f"/api/v1/bookings/{booking.id}/retry-reservation", headers=admin_headers)
    assert retried.status_code == 200

    room_data = (await client.get(f"/api/v1/rooms/{room.id}")).json()
    assert room_data["status"] == "Reserved"
    assert room_data["current_resident_id"] == student.id

    report = (await client.get(
        "/api/v1/bookings/divergent", params={"dorm_id": room.dorm_id}, headers=admin_headers,
    )).json()
    assert report == []


@pytest.mark.asyncio
async def test_retry_reservation_confirms_pending_booking(
    client: AsyncClient, student, admin_headers, room, make_booking,
):
    booking = await make_booking(student, room)
    response = await client.post(f"/api/v1/bookings/{booking.id}/retry-reservation", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "Confirmed"

    again = await client.post(f"/api/v1/bookings/{booking.id}/retry-reservation", headers=admin_headers)
    assert again.status_code == 200
    assert again.json()["status"] == "Confirmed"


@pytest.mark.asyncio
async def test_retry_reservation_reports_lifecycle_error(
    client: AsyncClient, student, other_student, admin_headers, make_room, make_booking,
):
    taken = await make_room("604", status="Reserved", current_resident_id=other_student.id)
    booking = await make_booking(student, taken)

    response = await client.post(f"/api/v1/bookings/{booking.id}/retry-reservation", headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["error"] == "RoomNotAvailable"

    stored = (await client.get(f"/api/v1/bookings/{booking.id}", headers=admin_headers)).json()
    assert stored["status"] == "Pending"


@pytest.mark.asyncio
async def test_retry_reservation_requires_dorm_admin(
    client: AsyncClient, student, student_headers, room, make_booking,
):
    booking = await make_booking(student, room)
    response = await client.post(f"/api/v1/bookings/{booking.id}/retry-reservation", headers=student_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_retry_cancelled_booking_conflicts(client: AsyncClient, student, admin_headers, room, make_booking):
    booking = await make_booking(student, room, status="Cancelled")
    response = await client.post(f"/api/v1/bookings/{booking.id}/retry-reservation", headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["error"] == "InvalidBookingTransition"


@pytest.mark.asyncio
async def test_retry_duplicate_booking_conflicts(
    client: AsyncClient, student, admin_headers, make_room, make_booking,
):
    held = await make_room("608", status="Reserved", current_resident_id=student.id)
    await make_booking(student, held, status="Confirmed")
    duplicate = await make_booking(student, held)

    response = await client.post(f"/api/v1/bookings/{duplicate.id}/retry-reservation", headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["error"] == "DuplicateBooking"

    stored = (await client.get(f"/api/v1/bookings/{duplicate.id}", headers=admin_headers)).json()
    assert stored["status"] == "Pending"


@pytest.mark.asyncio
async def test_manual_confirm_of_duplicate_conflicts(
    client: AsyncClient, student, admin_headers, room, make_booking,
):
    await make_booking(student, room, status="Confirmed")
    duplicate = await make_booking(student, room)

    response = await client.put(
        f"/api/v1/bookings/{duplicate.id}", json={"status": "Confirmed"}, headers=admin_headers,
    )
    assert response.status_code == 409
    assert response.json()["error"] == "DuplicateBooking"


@pytest.mark.asyncio
async def test_divergence_reasons(
    client: AsyncClient, student, other_student, admin_headers, room, make_room, make_booking,
):
    held = await make_room("605", status="Reserved", current_resident_id=student.id)
    taken = await make_room("606", status="Occupied", current_resident_id=other_student.id)
    agreeing = await make_room("607", status="Reserved", current_resident_id=other_student.id)

    available_pending = await make_booking(student, room)
    held_pending = await make_booking(student, held)
    taken_pending = await make_booking(student, taken)
    orphaned = await make_booking(student, room, status="Confirmed", room_id=None)
    await make_booking(other_student, agreeing, status="Confirmed")
    await make_booking(student, taken, status="Cancelled")

    response = await client.get(
        "/api/v1/bookings/divergent", params={"dorm_id": room.dorm_id}, headers=admin_headers,
    )
    assert response.status_code == 200
    reasons = {r["booking"]["id"]: r["reason"] for r in response.json()}
    assert reasons == {
        available_pending.id: "pending_room_available",
        held_pending.id: "pending_room_held",
        taken_pending.id: "pending_room_taken",
        orphaned.id: "room_deleted",
    }


@pytest.mark.asyncio
async def test_divergent_requires_dorm_admin(client: AsyncClient, student_headers, dorm):
    response = await client.get(
        "/api/v1/bookings/divergent", params={"dorm_id": dorm.id}, headers=student_headers,
    )
    assert response.status_code == 403
