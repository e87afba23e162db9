"""
Room endpoints: listings, lifecycle transitions and dashboard statistics.

Every mutation is guarded by the dorm-admin decision and maps 1:1 onto a
room_service operation. Cached listings are invalidated in a background
task, i.e. after the request's transaction has committed.
"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from lumiq.db.session import get_db
from lumiq.models.room import Room, RoomStatus, RoomType
from lumiq.schemas.room import (
    AvailabilityRequest,
    MoveOutDateRequest,
    ReserveRequest,
    ResidentRequest,
    RoomCreate,
    RoomDeleteResponse,
    RoomListResponse,
    RoomResponse,
    RoomUpdate,
)
from lumiq.schemas.statistics import OccupancyStats, RoomsByFloor, UpcomingAvailable
from lumiq.services import room_service, statistics_service
from lumiq.services.access_service import ensure_dorm_admin
from lumiq.services.cache_service import (
    get_cached_rooms,
    set_cached_rooms,
    invalidate_room_cache,
    make_room_list_key,
)
from lumiq.core.config import get_settings
from lumiq.core.security import Caller, get_current_caller
from lumiq.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()
router = APIRouter(prefix="/rooms", tags=["Rooms"])


async def _room_for_admin(db: AsyncSession, room_id: int, caller: Caller) -> Room:
    # Existence first: a missing room is 404, not 403
    room = await room_service.get_room(db, room_id)
    await ensure_dorm_admin(db, caller, room.dorm_id)
    return room


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@router.get("/", response_model=RoomListResponse)
async def list_rooms_endpoint(
    dorm_id: Optional[int] = Query(None),
    room_status: Optional[RoomStatus] = Query(None, alias="status"),
    zone: Optional[str] = Query(None),
    room_type: Optional[RoomType] = Query(None),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=settings.ROOM_LIST_MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
):
    """
    List rooms with filters and pagination.
    Cached in Redis; any room mutation invalidates the cache.
    """
    filters = {
        "dorm_id": dorm_id,
        "status": room_status.value if room_status else None,
        "zone": zone,
        "room_type": room_type.value if room_type else None,
        "min_price": min_price,
        "max_price": max_price,
    }
    cache_key = make_room_list_key(page=page, page_size=page_size, **filters)

    cached = await get_cached_rooms(cache_key)
    if cached:
        logger.info("rooms_list_cache_hit", page=page)
        cached["cached"] = True
        return RoomListResponse(**cached)

    rooms, total = await room_service.list_rooms(db, page=page, page_size=page_size, **filters)
    response_data = {
        "rooms": [RoomResponse.model_validate(r).model_dump(mode="json") for r in rooms],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }
    await set_cached_rooms(cache_key, response_data)
    return RoomListResponse(**response_data)


@router.get("/upcoming-available", response_model=UpcomingAvailable)
async def upcoming_available_default_endpoint(
    dorm_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Upcoming vacancies over the default lookahead window."""
    return await statistics_service.upcoming_available(db, dorm_id=dorm_id)


@router.get("/upcoming-available/{days}", response_model=UpcomingAvailable)
async def upcoming_available_endpoint(
    days: int = Path(..., ge=0, le=settings.UPCOMING_MAX_DAYS),
    dorm_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Occupied rooms whose expected move-out falls within the next `days` days."""
    return await statistics_service.upcoming_available(db, days, dorm_id=dorm_id)


@router.get("/dorm/{dorm_id}/statistics", response_model=OccupancyStats)
async def dorm_statistics_endpoint(dorm_id: int, db: AsyncSession = Depends(get_db)):
    return await statistics_service.occupancy_stats(db, dorm_id)


@router.get("/dorm/{dorm_id}/by-floor", response_model=RoomsByFloor)
async def rooms_by_floor_endpoint(dorm_id: int, db: AsyncSession = Depends(get_db)):
    return await statistics_service.rooms_by_floor(db, dorm_id)


@router.get("/{room_id}", response_model=RoomResponse)
async def get_room_endpoint(room_id: int, db: AsyncSession = Depends(get_db)):
    """Get a single room. Not cached (needs real-time status)."""
    return await room_service.get_room(db, room_id)


# ---------------------------------------------------------------------------
# Admin CRUD
# ---------------------------------------------------------------------------

@router.post("/", response_model=RoomResponse, status_code=status.HTTP_201_CREATED)
async def create_room_endpoint(
    room_data: RoomCreate,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Create a room in a dorm the caller administers."""
    await ensure_dorm_admin(db, caller, room_data.dorm_id)
    room = await room_service.create_room(db, room_data)
    background_tasks.add_task(invalidate_room_cache)
    return room


@router.put("/{room_id}", response_model=RoomResponse)
async def update_room_endpoint(
    room_id: int,
    patch: RoomUpdate,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Update descriptive fields. Status and resident are not writable here."""
    await _room_for_admin(db, room_id, caller)
    room = await room_service.update_room(db, room_id, patch)
    background_tasks.add_task(invalidate_room_cache)
    return room


@router.patch("/{room_id}/availability", response_model=RoomResponse)
async def set_availability_endpoint(
    room_id: int,
    body: AvailabilityRequest,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Toggle Available <-> Maintenance. Refused while the room has a resident."""
    await _room_for_admin(db, room_id, caller)
    room = await room_service.set_availability(db, room_id, body.available)
    background_tasks.add_task(invalidate_room_cache)
    return room


@router.delete("/{room_id}", response_model=RoomDeleteResponse)
async def delete_room_endpoint(
    room_id: int,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Delete a room. Refused while a Pending/Confirmed booking references it."""
    await _room_for_admin(db, room_id, caller)
    await room_service.delete_room(db, room_id)
    background_tasks.add_task(invalidate_room_cache)
    return RoomDeleteResponse(message="Room deleted successfully", room_id=room_id)


# ---------------------------------------------------------------------------
# Lifecycle transitions
# ---------------------------------------------------------------------------

@router.post("/{room_id}/reserve", response_model=RoomResponse)
async def reserve_room_endpoint(
    room_id: int,
    body: ReserveRequest,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Available -> Reserved for `user_id`. Exactly one concurrent caller wins."""
    await _room_for_admin(db, room_id, caller)
    room = await room_service.reserve_room(db, room_id, body.user_id, body.move_in_date)
    background_tasks.add_task(invalidate_room_cache)
    return room


@router.post("/{room_id}/move-in", response_model=RoomResponse)
async def move_in_endpoint(
    room_id: int,
    body: ResidentRequest,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Reserved -> Occupied for the resident who reserved the room."""
    await _room_for_admin(db, room_id, caller)
    room = await room_service.move_in(db, room_id, body.user_id)
    background_tasks.add_task(invalidate_room_cache)
    return room


@router.patch("/{room_id}/move-out-date", response_model=RoomResponse)
async def set_move_out_date_endpoint(
    room_id: int,
    body: MoveOutDateRequest,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Schedule when an Occupied room is expected to free up."""
    await _room_for_admin(db, room_id, caller)
    room = await room_service.set_move_out_date(db, room_id, body.user_id, body.move_out_date)
    background_tasks.add_task(invalidate_room_cache)
    return room


@router.post("/{room_id}/move-out", response_model=RoomResponse)
async def move_out_endpoint(
    room_id: int,
    body: ResidentRequest,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Occupied -> Available, clearing resident and dates."""
    await _room_for_admin(db, room_id, caller)
    room = await room_service.move_out(db, room_id, body.user_id)
    background_tasks.add_task(invalidate_room_cache)
    return room


@router.post("/{room_id}/release", response_model=RoomResponse)
async def release_reservation_endpoint(
    room_id: int,
    body: ResidentRequest,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Reserved -> Available for a reservation that will not be taken up."""
    await _room_for_admin(db, room_id, caller)
    room = await room_service.release_reservation(db, room_id, body.user_id)
    background_tasks.add_task(invalidate_room_cache)
    return room
