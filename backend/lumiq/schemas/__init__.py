from lumiq.schemas.room import (
    RoomCreate, RoomUpdate, RoomResponse, RoomListResponse,
    ReserveRequest, ResidentRequest, MoveOutDateRequest, AvailabilityRequest,
)
from lumiq.schemas.booking import (
    BookingCreate, BookingUpdate, BookingResponse, BookingCreateResponse, DivergentBooking,
)
from lumiq.schemas.statistics import OccupancyStats, RoomsByFloor, UpcomingAvailable

__all__ = [
    "RoomCreate", "RoomUpdate", "RoomResponse", "RoomListResponse",
    "ReserveRequest", "ResidentRequest", "MoveOutDateRequest", "AvailabilityRequest",
    "BookingCreate", "BookingUpdate", "BookingResponse", "BookingCreateResponse", "DivergentBooking",
    "OccupancyStats", "RoomsByFloor", "UpcomingAvailable",
]
