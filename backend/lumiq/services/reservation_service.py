"""
Reservation coordinator: ties a freshly created booking to its room.

TWO-PHASE FLOW
==============

  1. booking_service.create_booking commits a Pending booking.
  2. attempt_reserve_after_booking runs Reserve (compare-and-set on the
     room) and, on success, moves the booking Pending -> Confirmed in the
     same commit.

The two phases are deliberately not one transaction. If Reserve loses (the
room was taken, is under maintenance, was deleted) the booking stays
Pending, nothing else is written, and the caller gets a warning instead of
an error: the student's request is on record and staff resolve it later.

That leaves a window in which a booking and its room disagree. It is made
visible rather than hidden:
  - find_divergent_bookings lists every active booking whose room does not
    agree with it, with the reason
  - retry_reservation re-runs Reserve for one booking; it is idempotent and,
    unlike the automatic attempt, reports the lifecycle error to the admin
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lumiq.models.booking import Booking, BookingStatus, ACTIVE_BOOKING_STATUSES
from lumiq.models.room import Room, RoomStatus
from lumiq.services import room_service
from lumiq.services.booking_service import has_active_booking, transition_booking
from lumiq.core.exceptions import (
    DuplicateBooking,
    InvalidBookingTransition,
    RoomLifecycleError,
    RoomNotFound,
)
from lumiq.core.metrics import record_booking_reservation
from lumiq.core.logging import get_logger

logger = get_logger(__name__)

CONFIRMED = BookingStatus.CONFIRMED.value

# Divergence reasons
PENDING_ROOM_HELD = "pending_room_held"
PENDING_ROOM_AVAILABLE = "pending_room_available"
PENDING_ROOM_TAKEN = "pending_room_taken"
CONFIRMED_ROOM_RELEASED = "confirmed_room_released"
ROOM_DELETED = "room_deleted"


@dataclass
class ReservationOutcome:
    booking: Booking
    confirmed: bool
    warning: Optional[str] = None
    error_code: Optional[str] = None


def _room_held_by(room: Optional[Room], user_id: int) -> bool:
    return (
        room is not None
        and room.has_resident
        and room.current_resident_id == user_id
    )


async def attempt_reserve_after_booking(db: AsyncSession, booking: Booking) -> ReservationOutcome:
    """
    Reserve the booking's room for its user and confirm the booking.

    A lifecycle failure is not raised: the booking stays Pending and the
    outcome carries a warning for the client.
    """
    try:
        if booking.room_id is None:
            raise RoomNotFound(f"Booking {booking.id} no longer references a room")
        await room_service.reserve_room(db, booking.room_id, booking.user_id, booking.move_in_date)
        confirmed = await transition_booking(db, booking, CONFIRMED)
        await db.commit()
    except (RoomLifecycleError, InvalidBookingTransition) as e:
        await db.rollback()
        await db.refresh(booking)
        record_booking_reservation(confirmed=False)
        logger.warning(
            "booking_reservation_deferred",
            booking_id=booking.id,
            room_id=booking.room_id,
            user_id=booking.user_id,
            error=e.error_code,
            detail=e.detail,
        )
        return ReservationOutcome(
            booking=booking,
            confirmed=False,
            warning=f"Booking saved as {booking.status} but the room was not reserved: {e.detail}",
            error_code=e.error_code,
        )

    record_booking_reservation(confirmed=True)
    logger.info("booking_confirmed", booking_id=confirmed.id, room_id=confirmed.room_id)
    return ReservationOutcome(booking=confirmed, confirmed=True)


async def retry_reservation(db: AsyncSession, booking: Booking) -> Booking:
    """
    Admin-triggered retry of the reservation for one booking.

    Safe to repeat: a booking whose room is already held by its user is only
    confirmed (if still Pending). A Pending booking is never confirmed next to
    another Confirmed booking of the same user for the same room. Lifecycle
    errors propagate to the caller.
    """
    if not booking.is_active:
        raise InvalidBookingTransition(f"Booking {booking.id} is cancelled")
    if booking.room_id is None:
        raise RoomNotFound(f"Booking {booking.id} no longer references a room")
    if booking.status != CONFIRMED and await has_active_booking(
        db, booking.user_id, booking.room_id, exclude_id=booking.id, statuses=(CONFIRMED,),
    ):
        raise DuplicateBooking(
            f"Booking {booking.id} duplicates a Confirmed booking for room {booking.room_id}"
        )

    room = await room_service.get_room(db, booking.room_id)
    if _room_held_by(room, booking.user_id):
        logger.info("booking_retry_already_held", booking_id=booking.id, room_id=room.id)
        return await transition_booking(db, booking, CONFIRMED)

    await room_service.reserve_room(db, booking.room_id, booking.user_id, booking.move_in_date)
    confirmed = await transition_booking(db, booking, CONFIRMED)
    logger.info("booking_retry_reserved", booking_id=booking.id, room_id=booking.room_id)
    return confirmed


def classify_divergence(booking: Booking, room: Optional[Room]) -> Optional[str]:
    """Why an active booking disagrees with its room, or None if it does not."""
    if room is None:
        return ROOM_DELETED
    held = _room_held_by(room, booking.user_id)
    if booking.status == CONFIRMED:
        return None if held else CONFIRMED_ROOM_RELEASED
    if held:
        return PENDING_ROOM_HELD
    if room.status == RoomStatus.AVAILABLE.value:
        return PENDING_ROOM_AVAILABLE
    return PENDING_ROOM_TAKEN


async def find_divergent_bookings(
    db: AsyncSession, dorm_id: int,
) -> list[tuple[Booking, Optional[Room], str]]:
    """Active bookings in a dorm whose room state does not match them."""
    result = await db.execute(
        select(Booking, Room)
        .outerjoin(Room, Room.id == Booking.room_id)
        .where(
            Booking.dorm_id == dorm_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        .order_by(Booking.id.asc())
    )

    divergent = []
    for booking, room in result.all():
        reason = classify_divergence(booking, room)
        if reason is not None:
            divergent.append((booking, room, reason))
    return divergent

