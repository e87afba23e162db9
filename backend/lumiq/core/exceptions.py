"""
Error taxonomy for room lifecycle and booking operations.

Every error is an HTTPException so it can be raised straight out of a service
and rendered by FastAPI; `error_code` names the failed precondition and is
echoed in the JSON body next to `detail`.
"""

from typing import Optional

from fastapi import HTTPException, status


class LumiqError(HTTPException):
    """Base class for every business error raised by this service."""

    default_status = status.HTTP_400_BAD_REQUEST
    default_detail = "Request failed"
    error_code: str = "LumiqError"

    def __init__(self, detail: Optional[str] = None, headers: Optional[dict] = None):
        super().__init__(
            status_code=self.default_status,
            detail=detail or self.default_detail,
            headers=headers,
        )


class RoomLifecycleError(LumiqError):
    """A room state-machine precondition did not hold."""

    default_status = status.HTTP_409_CONFLICT
    error_code = "RoomLifecycleError"


class RoomNotFound(RoomLifecycleError):
    default_status = status.HTTP_404_NOT_FOUND
    default_detail = "Room not found"
    error_code = "RoomNotFound"


class RoomNotAvailable(RoomLifecycleError):
    default_detail = "Room is not available"
    error_code = "RoomNotAvailable"


class InvalidTransition(RoomLifecycleError):
    default_detail = "Room status does not allow this transition"
    error_code = "InvalidTransition"


class ResidentMismatch(RoomLifecycleError):
    default_detail = "User is not the room's resident"
    error_code = "ResidentMismatch"


class RoomOccupied(RoomLifecycleError):
    default_detail = "Room has an active resident"
    error_code = "RoomOccupied"


class RoomHasActiveBooking(RoomLifecycleError):
    default_detail = "Room is referenced by an active booking"
    error_code = "RoomHasActiveBooking"


class ResidentNotFound(RoomLifecycleError):
    default_status = status.HTTP_404_NOT_FOUND
    default_detail = "User not found"
    error_code = "ResidentNotFound"


class InvalidPayload(LumiqError):
    default_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Invalid request data"
    error_code = "ValidationError"


class DormNotFound(LumiqError):
    default_status = status.HTTP_404_NOT_FOUND
    default_detail = "Dorm not found"
    error_code = "DormNotFound"


class DuplicateRoomNumber(LumiqError):
    default_status = status.HTTP_409_CONFLICT
    default_detail = "Room number already exists in this dorm"
    error_code = "DuplicateRoomNumber"


class BookingNotFound(LumiqError):
    default_status = status.HTTP_404_NOT_FOUND
    default_detail = "Booking not found"
    error_code = "BookingNotFound"


class InvalidBookingTransition(LumiqError):
    default_status = status.HTTP_409_CONFLICT
    default_detail = "Booking status does not allow this change"
    error_code = "InvalidBookingTransition"


class DuplicateBooking(LumiqError):
    default_status = status.HTTP_409_CONFLICT
    default_detail = "User already has an active booking for this room"
    error_code = "DuplicateBooking"


class AccessDenied(LumiqError):
    default_status = status.HTTP_403_FORBIDDEN
    default_detail = "Access denied"
    error_code = "AccessDenied"


class NotAuthenticated(LumiqError):
    default_status = status.HTTP_401_UNAUTHORIZED
    default_detail = "Authentication required"
    error_code = "NotAuthenticated"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})
