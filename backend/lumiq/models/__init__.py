from lumiq.models.user import User
from lumiq.models.dorm import Dorm
from lumiq.models.room import Room, RoomStatus, RoomType
from lumiq.models.booking import Booking, BookingStatus

__all__ = [
    "User", "Dorm",
    "Room", "RoomStatus", "RoomType",
    "Booking", "BookingStatus",
]
