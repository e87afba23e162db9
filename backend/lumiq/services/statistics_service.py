"""
Read-only room aggregations for the admin dashboard.

Every figure comes from a single SELECT, so the per-status counts of one
response are taken from the same snapshot and always add up to its total.
"""

from datetime import date, datetime, timedelta, timezone
from itertools import groupby
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from lumiq.models.room import Room, RoomStatus
from lumiq.schemas.room import RoomResponse
from lumiq.schemas.statistics import (
    FloorGroup,
    OccupancyStats,
    RoomsByFloor,
    StatusCounts,
    TypeCounts,
    UpcomingAvailable,
)
from lumiq.services.access_service import get_dorm
from lumiq.core.config import get_settings
from lumiq.core.logging import get_logger

logger = get_logger(__name__)

_STATUS_FIELD = {
    RoomStatus.AVAILABLE.value: "available",
    RoomStatus.RESERVED.value: "reserved",
    RoomStatus.OCCUPIED.value: "occupied",
    RoomStatus.MAINTENANCE.value: "maintenance",
}


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _count_statuses(rooms: list[Room]) -> StatusCounts:
    counts = StatusCounts()
    for room in rooms:
        field = _STATUS_FIELD[room.status]
        setattr(counts, field, getattr(counts, field) + 1)
    return counts


async def occupancy_stats(db: AsyncSession, dorm_id: int) -> OccupancyStats:
    """Rooms per status and type, occupancy percentage and average price."""
    await get_dorm(db, dorm_id)

    result = await db.execute(
        select(
            Room.status,
            Room.room_type,
            func.count(Room.id),
            func.coalesce(func.sum(Room.price_per_month), 0),
        )
        .where(Room.dorm_id == dorm_id)
        .group_by(Room.status, Room.room_type)
    )

    by_status = StatusCounts()
    by_type = TypeCounts()
    total = 0
    price_sum = 0.0
    for status, room_type, count, prices in result.all():
        field = _STATUS_FIELD[status]
        setattr(by_status, field, getattr(by_status, field) + count)
        type_field = room_type.lower()
        setattr(by_type, type_field, getattr(by_type, type_field) + count)
        total += count
        price_sum += float(prices)

    occupancy_rate = round(by_status.occupied / total * 100, 2) if total else 0.0
    average_price = round(price_sum / total, 2) if total else 0.0

    logger.debug("occupancy_stats_computed", dorm_id=dorm_id, total_rooms=total)
    return OccupancyStats(
        dorm_id=dorm_id,
        total_rooms=total,
        **by_status.model_dump(),
        occupancy_rate=occupancy_rate,
        by_type=by_type,
        average_price=average_price,
    )


async def rooms_by_floor(db: AsyncSession, dorm_id: int) -> RoomsByFloor:
    """A dorm's rooms grouped by floor, each floor with its own status counts."""
    await get_dorm(db, dorm_id)

    result = await db.execute(
        select(Room)
        .where(Room.dorm_id == dorm_id)
        .order_by(Room.floor.asc(), Room.room_number.asc())
    )
    rooms = list(result.scalars().all())

    floors = []
    for floor, group in groupby(rooms, key=lambda r: r.floor):
        members = list(group)
        floors.append(FloorGroup(
            floor=floor,
            total=len(members),
            counts=_count_statuses(members),
            rooms=[RoomResponse.model_validate(r) for r in members],
        ))
    return RoomsByFloor(dorm_id=dorm_id, floors=floors)


async def upcoming_available(
    db: AsyncSession,
    days: Optional[int] = None,
    dorm_id: Optional[int] = None,
    today: Optional[date] = None,
) -> UpcomingAvailable:
    """
    Occupied rooms expected to free up within [today, today + days], soonest
    first, so the next tenant can be lined up before the room is empty.
    `days` defaults to UPCOMING_DEFAULT_DAYS.
    """
    if days is None:
        days = get_settings().UPCOMING_DEFAULT_DAYS
    start = today or _today()
    end = start + timedelta(days=days)

    query = (
        select(Room)
        .where(
            Room.status == RoomStatus.OCCUPIED.value,
            Room.expected_available_date.is_not(None),
            Room.expected_available_date >= start,
            Room.expected_available_date <= end,
        )
        .order_by(Room.expected_available_date.asc(), Room.id.asc())
    )
    if dorm_id is not None:
        query = query.where(Room.dorm_id == dorm_id)

    result = await db.execute(query)
    rooms = [RoomResponse.model_validate(r) for r in result.scalars().all()]
    return UpcomingAvailable(days=days, from_date=start, to_date=end, rooms=rooms)
