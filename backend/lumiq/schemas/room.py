"""
Pydantic schemas for room requests and responses.
"""

from datetime import date, datetime
from typing import Optional, Union

from pydantic import BaseModel, Field, StrictBool, field_validator, model_validator

from lumiq.models.room import LIFECYCLE_FIELDS, RoomStatus, RoomType
from lumiq.schemas.common import NormalizedRequest

ROOM_FIELD_ALIASES = {
    "dormId": "dorm_id",
    "roomNumber": "room_number",
    "roomType": "room_type",
    "pricePerMonth": "price_per_month",
}


def _join_amenities(value):
    if isinstance(value, list):
        return ", ".join(item.strip() for item in value if item and item.strip()) or None
    return value


class RoomCreate(NormalizedRequest):
    field_aliases = ROOM_FIELD_ALIASES
    forbidden_fields = LIFECYCLE_FIELDS

    dorm_id: int
    room_number: str = Field(..., min_length=1, max_length=50)
    room_type: RoomType = RoomType.SINGLE
    capacity: int = Field(default=1, ge=1, le=3)
    price_per_month: float = Field(..., ge=0)
    floor: int = Field(default=1, ge=1)
    zone: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    amenities: Optional[Union[str, list[str]]] = None
    images: list[str] = Field(default_factory=list)

    @field_validator("amenities")
    @classmethod
    def join_amenities(cls, value):
        return _join_amenities(value)


class RoomUpdate(NormalizedRequest):
    """Descriptive fields only. dorm_id and lifecycle fields are immutable here."""

    field_aliases = ROOM_FIELD_ALIASES
    forbidden_fields = LIFECYCLE_FIELDS | {"dorm_id", "id"}

    room_number: Optional[str] = Field(None, min_length=1, max_length=50)
    room_type: Optional[RoomType] = None
    capacity: Optional[int] = Field(None, ge=1, le=3)
    price_per_month: Optional[float] = Field(None, ge=0)
    floor: Optional[int] = Field(None, ge=1)
    zone: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    amenities: Optional[Union[str, list[str]]] = None
    images: Optional[list[str]] = None

    @field_validator("amenities")
    @classmethod
    def join_amenities(cls, value):
        return _join_amenities(value)

    @model_validator(mode="after")
    def reject_null_required(self):
        required = ("room_number", "room_type", "capacity", "price_per_month", "floor", "images")
        for name in required:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"'{name}' cannot be null")
        return self


class RoomResponse(BaseModel):
    id: int
    dorm_id: int
    room_number: str
    room_type: RoomType
    capacity: int
    price_per_month: float
    floor: int
    zone: Optional[str]
    description: Optional[str]
    amenities: Optional[str]
    images: list[str]
    status: RoomStatus
    current_resident_id: Optional[int]
    expected_move_in_date: Optional[date]
    expected_available_date: Optional[date]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RoomListResponse(BaseModel):
    rooms: list[RoomResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False


class ReserveRequest(NormalizedRequest):
    field_aliases = {
        "userId": "user_id",
        "moveInDate": "move_in_date",
        "expected_move_in_date": "move_in_date",
    }

    user_id: int
    move_in_date: Optional[date] = None


class ResidentRequest(NormalizedRequest):
    field_aliases = {"userId": "user_id"}

    user_id: int


class MoveOutDateRequest(NormalizedRequest):
    field_aliases = {
        "userId": "user_id",
        "moveOutDate": "move_out_date",
        "expected_available_date": "move_out_date",
    }

    user_id: int
    move_out_date: date


class AvailabilityRequest(NormalizedRequest):
    available: StrictBool


class RoomDeleteResponse(BaseModel):
    message: str
    room_id: int
