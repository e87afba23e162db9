"""
Booking records: creation, lookup, partial update and cancellation.

A booking is an audit trail of what a student asked for. It never decides
occupancy; the room row does. Status changes go through the same guarded
UPDATE pattern as room transitions so two concurrent cancels cannot both
release the room.

    Pending --> Confirmed --> Cancelled
       |                          ^
       +--------------------------+
"""

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lumiq.models.booking import Booking, BookingStatus, ACTIVE_BOOKING_STATUSES
from lumiq.models.dorm import Dorm
from lumiq.models.room import RoomStatus
from lumiq.schemas.booking import BookingCreate, BookingUpdate
from lumiq.services import room_service
from lumiq.core.exceptions import (
    BookingNotFound,
    DuplicateBooking,
    InvalidBookingTransition,
    InvalidPayload,
    RoomLifecycleError,
    RoomNotFound,
)
from lumiq.core.security import Caller
from lumiq.core.logging import get_logger

logger = get_logger(__name__)

PENDING = BookingStatus.PENDING.value
CONFIRMED = BookingStatus.CONFIRMED.value
CANCELLED = BookingStatus.CANCELLED.value

ALLOWED_TRANSITIONS = {
    PENDING: {CONFIRMED, CANCELLED},
    CONFIRMED: {CANCELLED},
    CANCELLED: set(),
}


async def create_booking(db: AsyncSession, caller: Caller, booking_data: BookingCreate) -> Booking:
    """
    Persist a Pending booking for `caller`.

    The booking is committed on its own; reserving the room is a separate
    step (see reservation_service.attempt_reserve_after_booking).
    """
    room = await room_service.get_room(db, booking_data.room_id)
    if room.dorm_id != booking_data.dorm_id:
        raise InvalidPayload(
            f"Room {room.id} belongs to dorm {room.dorm_id}, not dorm {booking_data.dorm_id}"
        )
    if await has_active_booking(db, caller.user_id, room.id):
        raise DuplicateBooking(
            f"User {caller.user_id} already has an active booking for room {room.id}"
        )

    booking = Booking(
        user_id=caller.user_id,
        **booking_data.model_dump(),
        status=PENDING,
    )
    db.add(booking)
    await db.flush()
    await db.commit()
    await db.refresh(booking)

    logger.info(
        "booking_created",
        booking_id=booking.id,
        user_id=booking.user_id,
        dorm_id=booking.dorm_id,
        room_id=booking.room_id,
    )
    return booking


async def get_booking(db: AsyncSession, booking_id: int) -> Booking:
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise BookingNotFound(f"Booking {booking_id} not found")
    return booking


async def list_bookings(
    db: AsyncSession,
    caller: Caller,
    status: Optional[str] = None,
) -> list[Booking]:
    """Admins see bookings for the dorms they run; students see their own."""
    query = select(Booking)
    if caller.is_admin:
        owned_dorms = select(Dorm.id).where(Dorm.admin_id == caller.user_id)
        query = query.where(Booking.dorm_id.in_(owned_dorms))
    else:
        query = query.where(Booking.user_id == caller.user_id)
    if status is not None:
        query = query.where(Booking.status == status)

    result = await db.execute(query.order_by(Booking.id.desc()))
    return list(result.scalars().all())


async def transition_booking(db: AsyncSession, booking: Booking, target: str) -> Booking:
    """Move a booking to `target` if its current status still allows it."""
    current = booking.status
    if current == target:
        return await get_booking(db, booking.id)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidBookingTransition(
            f"Booking {booking.id} cannot go from {current} to {target}"
        )

    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.status == current)
        .values(status=target)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        fresh = await get_booking(db, booking.id)
        raise InvalidBookingTransition(
            f"Booking {booking.id} changed concurrently (now {fresh.status})"
        )

    logger.info("booking_status_changed", booking_id=booking.id, old=current, new=target)
    return await get_booking(db, booking.id)


async def has_active_booking(
    db: AsyncSession,
    user_id: int,
    room_id: Optional[int],
    exclude_id: Optional[int] = None,
    statuses: tuple = ACTIVE_BOOKING_STATUSES,
) -> bool:
    """Whether `user_id` holds a booking in `statuses` for `room_id`, other than `exclude_id`."""
    if room_id is None:
        return False
    query = select(Booking.id).where(
        Booking.user_id == user_id,
        Booking.room_id == room_id,
        Booking.status.in_(statuses),
    )
    if exclude_id is not None:
        query = query.where(Booking.id != exclude_id)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none() is not None


async def _release_room_for(db: AsyncSession, booking: Booking) -> None:
    """
    Free a room still Reserved for this booking's user. Occupied rooms need a
    move-out; a room another active booking of the same user relies on is kept.
    """
    if booking.room_id is None:
        return
    try:
        room = await room_service.get_room(db, booking.room_id)
    except RoomNotFound:
        return  # deleted since the booking was made
    if room.status != RoomStatus.RESERVED.value or room.current_resident_id != booking.user_id:
        return
    if await has_active_booking(db, booking.user_id, booking.room_id, exclude_id=booking.id):
        logger.info("booking_cancel_room_kept", booking_id=booking.id, room_id=booking.room_id)
        return
    try:
        await room_service.release_reservation(db, booking.room_id, booking.user_id)
    except RoomLifecycleError as e:
        # Someone moved the room on between the read and the release
        logger.info(
            "booking_cancel_room_untouched",
            booking_id=booking.id,
            room_id=booking.room_id,
            reason=e.error_code,
        )


async def cancel_booking(db: AsyncSession, booking: Booking) -> Booking:
    """Cancel a booking and release its room if the room is only Reserved."""
    if not booking.is_active:
        raise InvalidBookingTransition(f"Booking {booking.id} is already cancelled")

    cancelled = await transition_booking(db, booking, CANCELLED)
    await _release_room_for(db, cancelled)
    return cancelled


async def update_booking(db: AsyncSession, booking: Booking, patch: BookingUpdate) -> Booking:
    """
    Partial update. A status change follows ALLOWED_TRANSITIONS; a manual
    Confirm records the decision only and does not reserve the room.
    """
    if not booking.is_active:
        raise InvalidBookingTransition(f"Booking {booking.id} is cancelled and cannot be changed")

    changes = patch.model_dump(exclude_unset=True)
    target = changes.pop("status", None)
    if target is not None:
        target = BookingStatus(target).value
        if target != booking.status and target not in ALLOWED_TRANSITIONS[booking.status]:
            raise InvalidBookingTransition(
                f"Booking {booking.id} cannot go from {booking.status} to {target}"
            )
        if target == CONFIRMED and booking.status != CONFIRMED and await has_active_booking(
            db, booking.user_id, booking.room_id, exclude_id=booking.id, statuses=(CONFIRMED,),
        ):
            raise DuplicateBooking(
                f"Booking {booking.id} duplicates a Confirmed booking for room {booking.room_id}"
            )

    if changes:
        for field, value in changes.items():
            setattr(booking, field, value)
        await db.flush()
        logger.info("booking_updated", booking_id=booking.id, fields=sorted(changes))

    if target == CANCELLED:
        return await cancel_booking(db, booking)
    if target is not None:
        return await transition_booking(db, booking, target)
    return await get_booking(db, booking.id)
