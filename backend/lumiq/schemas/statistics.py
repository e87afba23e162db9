"""
Pydantic schemas for the admin dashboard's room statistics.
"""

from datetime import date

from pydantic import BaseModel

from lumiq.schemas.room import RoomResponse


class StatusCounts(BaseModel):
    available: int = 0
    reserved: int = 0
    occupied: int = 0
    maintenance: int = 0

    @property
    def total(self) -> int:
        return self.available + self.reserved + self.occupied + self.maintenance


class TypeCounts(BaseModel):
    single: int = 0
    double: int = 0
    triple: int = 0


class OccupancyStats(BaseModel):
    dorm_id: int
    total_rooms: int
    available: int
    reserved: int
    occupied: int
    maintenance: int
    occupancy_rate: float  # percent of rooms Occupied
    by_type: TypeCounts
    average_price: float


class FloorGroup(BaseModel):
    floor: int
    total: int
    counts: StatusCounts
    rooms: list[RoomResponse]


class RoomsByFloor(BaseModel):
    dorm_id: int
    floors: list[FloorGroup]


class UpcomingAvailable(BaseModel):
    days: int
    from_date: date
    to_date: date
    rooms: list[RoomResponse]
