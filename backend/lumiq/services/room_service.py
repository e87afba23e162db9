"""
Room lifecycle service: every status/resident change a room goes through.

STATE MACHINE
=============

    Available --reserve--> Reserved --move_in--> Occupied --move_out--> Available
        |  ^                   |
        |  |                   +--release_reservation--> Available
        v  |
    Maintenance   (set_availability false/true, only while no resident)

set_move_out_date schedules an Occupied room's vacancy without changing
its status.

CONCURRENCY STRATEGY: Compare-and-set on the status column
==========================================================

Problem:
  Two students book the last free room at the same moment. Both read
  status='Available', both write status='Reserved'. The room now has two
  residents, and one of them silently lost.

Solution:
  Each transition is a single guarded UPDATE whose WHERE clause carries the
  precondition:

    UPDATE rooms SET status='Reserved', current_resident_id=:user, ...
    WHERE id=:room_id AND status='Available'

  The database evaluates the predicate and applies the write atomically.
  PostgreSQL blocks the second writer on the row lock and re-checks the
  predicate after the first commits, so it matches zero rows. If
  rowcount == 0 we re-read the room only to explain *why* it failed
  (missing, wrong status, wrong resident); that read never feeds a write.

  This approach:
  - One statement per transition, no SELECT FOR UPDATE, no retry loop.
    A lost race is a business outcome (RoomNotAvailable), not a conflict to
    retry
  - Rooms are independent rows, so there is no cross-room locking
  - The CHECK constraint on (status, current_resident_id) is the final
    safety net for the resident invariant

Services flush/execute only; the request's session is committed by get_db.
"""

import time
from datetime import date
from typing import Any, Optional

from sqlalchemy import select, update, delete, func, exists
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lumiq.models.room import Room, RoomStatus, LIFECYCLE_FIELDS
from lumiq.models.booking import Booking, ACTIVE_BOOKING_STATUSES
from lumiq.models.dorm import Dorm
from lumiq.models.user import User
from lumiq.schemas.room import RoomCreate, RoomUpdate
from lumiq.core.exceptions import (
    RoomNotFound,
    RoomNotAvailable,
    InvalidTransition,
    ResidentMismatch,
    RoomOccupied,
    RoomHasActiveBooking,
    ResidentNotFound,
    InvalidPayload,
    DormNotFound,
    DuplicateRoomNumber,
    RoomLifecycleError,
)
from lumiq.core.metrics import record_transition, reservation_latency
from lumiq.core.logging import get_logger

logger = get_logger(__name__)

AVAILABLE = RoomStatus.AVAILABLE.value
RESERVED = RoomStatus.RESERVED.value
OCCUPIED = RoomStatus.OCCUPIED.value
MAINTENANCE = RoomStatus.MAINTENANCE.value

_CLEARED_LIFECYCLE = {
    "current_resident_id": None,
    "expected_move_in_date": None,
    "expected_available_date": None,
}


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def _load_room(db: AsyncSession, room_id: int) -> Optional[Room]:
    # populate_existing: a guarded UPDATE bypasses the identity map
    result = await db.execute(
        select(Room).where(Room.id == room_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_room(db: AsyncSession, room_id: int) -> Room:
    """Get a single room by ID. Always read live; never cached."""
    room = await _load_room(db, room_id)
    if not room:
        raise RoomNotFound(f"Room {room_id} not found")
    return room


async def list_rooms(
    db: AsyncSession,
    dorm_id: Optional[int] = None,
    status: Optional[str] = None,
    zone: Optional[str] = None,
    room_type: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[Room], int]:
    """List rooms with filters, ordered by dorm, floor and room number."""
    query = select(Room)
    if dorm_id is not None:
        query = query.where(Room.dorm_id == dorm_id)
    if status is not None:
        query = query.where(Room.status == status)
    if zone is not None:
        query = query.where(Room.zone == zone)
    if room_type is not None:
        query = query.where(Room.room_type == room_type)
    if min_price is not None:
        query = query.where(Room.price_per_month >= min_price)
    if max_price is not None:
        query = query.where(Room.price_per_month <= max_price)

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    rooms_query = (
        query
        .order_by(Room.dorm_id.asc(), Room.floor.asc(), Room.room_number.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(rooms_query)
    return list(result.scalars().all()), total


# ---------------------------------------------------------------------------
# Guarded transitions
# ---------------------------------------------------------------------------

async def _compare_and_set(
    db: AsyncSession,
    room_id: int,
    values: dict[str, Any],
    *conditions,
) -> Optional[Room]:
    """
    Apply `values` to the room only if every condition still holds.
    Returns the refreshed room, or None when no row matched.
    """
    result = await db.execute(
        update(Room)
        .where(Room.id == room_id, *conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return None
    return await _load_room(db, room_id)


def _explain_resident_failure(
    room: Room, transition: str, expected_status: str, user_id: int,
) -> RoomLifecycleError:
    """Name the precondition a resident-bound transition failed on."""
    if room.status != expected_status:
        return InvalidTransition(
            f"Cannot {transition} room {room.id}: status is {room.status}, "
            f"expected {expected_status}"
        )
    return ResidentMismatch(
        f"Cannot {transition} room {room.id}: user {user_id} is not its resident"
    )


def _rejected(transition: str, error: RoomLifecycleError, **context) -> RoomLifecycleError:
    record_transition(transition, error.error_code)
    logger.warning(
        "room_transition_rejected",
        transition=transition,
        error=error.error_code,
        detail=error.detail,
        **context,
    )
    return error


async def _resident_transition(
    db: AsyncSession,
    transition: str,
    room_id: int,
    user_id: int,
    expected_status: str,
    values: dict[str, Any],
) -> Room:
    room = await _compare_and_set(
        db,
        room_id,
        values,
        Room.status == expected_status,
        Room.current_resident_id == user_id,
    )
    if room is not None:
        record_transition(transition)
        logger.info(
            f"room_{transition}",
            room_id=room_id,
            user_id=user_id,
            status=room.status,
        )
        return room

    current = await _load_room(db, room_id)
    if current is None:
        raise _rejected(transition, RoomNotFound(f"Room {room_id} not found"), room_id=room_id)
    raise _rejected(
        transition,
        _explain_resident_failure(current, transition.replace("_", " "), expected_status, user_id),
        room_id=room_id,
        user_id=user_id,
    )


async def reserve_room(
    db: AsyncSession,
    room_id: int,
    user_id: int,
    move_in_date: Optional[date] = None,
) -> Room:
    """
    Available -> Reserved, binding the room to `user_id`.

    Compare-and-set: of N concurrent calls on one Available room exactly one
    matches the `status = 'Available'` predicate; the rest get RoomNotAvailable.
    """
    if await _load_room(db, room_id) is None:
        raise _rejected("reserve", RoomNotFound(f"Room {room_id} not found"), room_id=room_id)
    if await db.get(User, user_id) is None:
        raise _rejected("reserve", ResidentNotFound(f"User {user_id} not found"), room_id=room_id)

    started = time.perf_counter()
    room = await _compare_and_set(
        db,
        room_id,
        {
            "status": RESERVED,
            "current_resident_id": user_id,
            "expected_move_in_date": move_in_date,
            "expected_available_date": None,
        },
        Room.status == AVAILABLE,
    )
    reservation_latency.observe(time.perf_counter() - started)

    if room is not None:
        record_transition("reserve")
        logger.info(
            "room_reserved",
            room_id=room_id,
            user_id=user_id,
            move_in_date=str(move_in_date) if move_in_date else None,
        )
        return room

    current = await _load_room(db, room_id)
    if current is None:
        raise _rejected("reserve", RoomNotFound(f"Room {room_id} not found"), room_id=room_id)
    raise _rejected(
        "reserve",
        RoomNotAvailable(f"Room {room_id} is not available (status: {current.status})"),
        room_id=room_id,
        user_id=user_id,
        status=current.status,
    )


async def move_in(db: AsyncSession, room_id: int, user_id: int) -> Room:
    """Reserved -> Occupied for the resident who reserved the room."""
    return await _resident_transition(
        db, "move_in", room_id, user_id, RESERVED, {"status": OCCUPIED},
    )


async def set_move_out_date(
    db: AsyncSession, room_id: int, user_id: int, move_out_date: date,
) -> Room:
    """Schedule the vacancy of an Occupied room. Status is unchanged."""
    return await _resident_transition(
        db,
        "set_move_out_date",
        room_id,
        user_id,
        OCCUPIED,
        {"expected_available_date": move_out_date},
    )


async def move_out(db: AsyncSession, room_id: int, user_id: int) -> Room:
    """Occupied -> Available, clearing the resident and both dates."""
    return await _resident_transition(
        db,
        "move_out",
        room_id,
        user_id,
        OCCUPIED,
        {"status": AVAILABLE, **_CLEARED_LIFECYCLE},
    )


async def release_reservation(db: AsyncSession, room_id: int, user_id: int) -> Room:
    """Reserved -> Available, for a reservation that will not be taken up."""
    return await _resident_transition(
        db,
        "release_reservation",
        room_id,
        user_id,
        RESERVED,
        {"status": AVAILABLE, **_CLEARED_LIFECYCLE},
    )


async def set_availability(db: AsyncSession, room_id: int, available: bool) -> Room:
    """
    Administrative Available <-> Maintenance toggle.

    Only rooms without a resident may move; asking for the state a room is
    already in returns it unchanged.
    """
    if available:
        source, target = MAINTENANCE, AVAILABLE
    else:
        source, target = AVAILABLE, MAINTENANCE

    room = await _compare_and_set(db, room_id, {"status": target}, Room.status == source)
    if room is not None:
        record_transition("set_availability")
        logger.info("room_availability_changed", room_id=room_id, status=target)
        return room

    current = await _load_room(db, room_id)
    if current is None:
        raise _rejected("set_availability", RoomNotFound(f"Room {room_id} not found"), room_id=room_id)
    if current.status == target:
        return current
    raise _rejected(
        "set_availability",
        RoomOccupied(
            f"Room {room_id} has an active resident (status: {current.status}); "
            f"it cannot be set to {target}"
        ),
        room_id=room_id,
        status=current.status,
    )


# ---------------------------------------------------------------------------
# Descriptive CRUD
# ---------------------------------------------------------------------------

async def _room_number_taken(
    db: AsyncSession, dorm_id: int, room_number: str, exclude_id: Optional[int] = None,
) -> bool:
    query = select(Room.id).where(Room.dorm_id == dorm_id, Room.room_number == room_number)
    if exclude_id is not None:
        query = query.where(Room.id != exclude_id)
    return (await db.execute(query)).first() is not None


async def create_room(db: AsyncSession, room_data: RoomCreate) -> Room:
    """Create a room in an existing dorm. New rooms start Available."""
    if await db.get(Dorm, room_data.dorm_id) is None:
        raise DormNotFound(f"Dorm {room_data.dorm_id} not found")

    if await _room_number_taken(db, room_data.dorm_id, room_data.room_number):
        raise DuplicateRoomNumber(
            f"Room number {room_data.room_number} already exists in dorm {room_data.dorm_id}"
        )

    room = Room(
        **room_data.model_dump(mode="json"),
        status=AVAILABLE,
        current_resident_id=None,
    )
    db.add(room)
    try:
        await db.flush()
    except IntegrityError:
        # Lost a race with a concurrent create of the same number
        await db.rollback()
        raise DuplicateRoomNumber(
            f"Room number {room_data.room_number} already exists in dorm {room_data.dorm_id}"
        )
    await db.refresh(room)

    logger.info("room_created", room_id=room.id, dorm_id=room.dorm_id, room_number=room.room_number)
    return room


async def update_room(db: AsyncSession, room_id: int, patch: RoomUpdate) -> Room:
    """
    Update descriptive fields. Status and resident fields are reachable only
    through the transitions above.
    """
    changes = patch.model_dump(mode="json", exclude_unset=True)
    blocked = LIFECYCLE_FIELDS.intersection(changes)
    if blocked:
        raise InvalidPayload(
            f"Fields {sorted(blocked)} can only be changed through lifecycle operations"
        )

    room = await get_room(db, room_id)
    if not changes:
        return room

    new_number = changes.get("room_number")
    if new_number and new_number != room.room_number:
        if await _room_number_taken(db, room.dorm_id, new_number, exclude_id=room_id):
            raise DuplicateRoomNumber(
                f"Room number {new_number} already exists in dorm {room.dorm_id}"
            )

    # Descriptive columns only, so this UPDATE cannot race a transition
    try:
        await db.execute(
            update(Room)
            .where(Room.id == room_id)
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
    except IntegrityError:
        await db.rollback()
        raise DuplicateRoomNumber(
            f"Room number {new_number} already exists in dorm {room.dorm_id}"
        )
    room = await get_room(db, room_id)

    logger.info("room_updated", room_id=room_id, fields=sorted(changes))
    return room


async def delete_room(db: AsyncSession, room_id: int) -> None:
    """
    Delete a room that no Pending/Confirmed booking references.

    The guard is part of the DELETE itself, so a booking committed between
    a check and the delete cannot be orphaned.
    """
    await get_room(db, room_id)

    active_booking = exists().where(
        Booking.room_id == room_id,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
    )
    result = await db.execute(
        delete(Room)
        .where(Room.id == room_id, ~active_booking)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        count = (await db.execute(
            select(func.count(Booking.id)).where(
                Booking.room_id == room_id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            )
        )).scalar()
        if not count:
            raise _rejected("delete", RoomNotFound(f"Room {room_id} not found"), room_id=room_id)
        raise _rejected(
            "delete",
            RoomHasActiveBooking(
                f"Room {room_id} has {count} active booking(s); cancel them before deleting"
            ),
            room_id=room_id,
        )

    record_transition("delete")
    logger.info("room_deleted", room_id=room_id)
