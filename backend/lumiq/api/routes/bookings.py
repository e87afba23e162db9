"""
Booking endpoints. Creating a booking also tries to reserve its room.
"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from lumiq.db.session import get_db
from lumiq.models.booking import BookingStatus
from lumiq.schemas.booking import (
    BookingCreate,
    BookingCreateResponse,
    BookingResponse,
    BookingUpdate,
    DivergentBooking,
)
from lumiq.services.booking_service import (
    cancel_booking,
    create_booking,
    get_booking,
    list_bookings,
    update_booking,
)
from lumiq.services.reservation_service import (
    attempt_reserve_after_booking,
    find_divergent_bookings,
    retry_reservation,
)
from lumiq.services.access_service import ensure_booking_access, ensure_dorm_admin, is_dorm_admin
from lumiq.services.cache_service import invalidate_room_cache
from lumiq.core.exceptions import AccessDenied
from lumiq.core.security import Caller, get_current_caller, get_current_student
from lumiq.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("/", response_model=BookingCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_booking_endpoint(
    booking_data: BookingCreate,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
):
    """
    Book a room.

    The booking is stored as Pending first. If the room can then be reserved
    it is returned Confirmed; otherwise it stays Pending and
    `reservation_warning` says why. Either way the response is 201.
    """
    booking = await create_booking(db, caller, booking_data)
    outcome = await attempt_reserve_after_booking(db, booking)
    if outcome.confirmed:
        background_tasks.add_task(invalidate_room_cache)

    response = BookingCreateResponse.model_validate(outcome.booking)
    response.reservation_warning = outcome.warning
    return response


@router.get("/", response_model=list[BookingResponse])
async def list_bookings_endpoint(
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Students get their own bookings; admins get the bookings of their dorms."""
    return await list_bookings(
        db, caller, status=booking_status.value if booking_status else None,
    )


@router.get("/divergent", response_model=list[DivergentBooking])
async def divergent_bookings_endpoint(
    dorm_id: int = Query(...),
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Active bookings whose room does not agree with them, for reconciliation."""
    await ensure_dorm_admin(db, caller, dorm_id)
    rows = await find_divergent_bookings(db, dorm_id)
    return [
        DivergentBooking(
            booking=BookingResponse.model_validate(booking),
            room_status=room.status if room else None,
            room_resident_id=room.current_resident_id if room else None,
            reason=reason,
        )
        for booking, room, reason in rows
    ]


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(
    booking_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    booking = await get_booking(db, booking_id)
    await ensure_booking_access(db, caller, booking)
    return booking


@router.put("/{booking_id}", response_model=BookingResponse)
async def update_booking_endpoint(
    booking_id: int,
    patch: BookingUpdate,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """
    Partial update. Only the dorm admin may confirm; a manual confirm does
    not reserve the room (use retry-reservation for that).
    """
    booking = await get_booking(db, booking_id)
    await ensure_booking_access(db, caller, booking)
    if patch.status == BookingStatus.CONFIRMED and booking.status != BookingStatus.CONFIRMED.value:
        if not await is_dorm_admin(db, caller, booking.dorm_id):
            raise AccessDenied("Only the dorm admin can confirm a booking")

    updated = await update_booking(db, booking, patch)
    if patch.status == BookingStatus.CANCELLED:
        background_tasks.add_task(invalidate_room_cache)
    return updated


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking_endpoint(
    booking_id: int,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a booking and release its room if it is still only Reserved."""
    booking = await get_booking(db, booking_id)
    await ensure_booking_access(db, caller, booking)
    cancelled = await cancel_booking(db, booking)
    background_tasks.add_task(invalidate_room_cache)
    return cancelled


@router.post("/{booking_id}/retry-reservation", response_model=BookingResponse)
async def retry_reservation_endpoint(
    booking_id: int,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Re-run the room reservation for a booking. Lifecycle errors are returned as-is."""
    booking = await get_booking(db, booking_id)
    await ensure_dorm_admin(db, caller, booking.dorm_id)
    confirmed = await retry_reservation(db, booking)
    background_tasks.add_task(invalidate_room_cache)
    return confirmed
