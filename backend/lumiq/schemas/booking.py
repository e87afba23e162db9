"""
Pydantic schemas for booking requests and responses.

Booking bodies come from several client generations, so they accept the
camelCase names and the older alternate spellings; see BOOKING_FIELD_ALIASES.
"""

from datetime import date, datetime, time
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from lumiq.models.booking import BookingStatus
from lumiq.schemas.common import NormalizedRequest

BOOKING_FIELD_ALIASES = {
    "dormId": "dorm_id",
    "roomId": "room_id",
    "moveInDate": "move_in_date",
    "expected_move_in_date": "move_in_date",
    "stayDuration": "stay_duration",
    "durationType": "duration_type",
    "paymentMethod": "payment_method",
    "paymentSlipUrl": "payment_slip_url",
    "bookingFeePaid": "booking_fee_paid",
    "booking_fees": "booking_fee_paid",
    "totalAmount": "total_amount",
}

DurationType = Literal["months", "years"]
PaymentMethod = Literal["card", "qr", "slip"]


class BookingCreate(NormalizedRequest):
    field_aliases = BOOKING_FIELD_ALIASES
    forbidden_fields = frozenset({"status", "user_id", "userId"})

    dorm_id: int
    room_id: int
    move_in_date: Optional[date] = None
    stay_duration: int = Field(default=0, ge=0)
    duration_type: DurationType = "months"
    payment_method: PaymentMethod = "card"
    payment_slip_url: Optional[str] = Field(None, max_length=500)
    booking_fee_paid: float = Field(default=0, ge=0)
    total_amount: float = Field(default=0, ge=0)
    booked_at: Optional[datetime] = None

    @classmethod
    def combine_fields(cls, data: dict[str, Any]) -> dict[str, Any]:
        booked_date = data.pop("booked_date", None)
        booked_time = data.pop("booked_time", None)
        if booked_time is not None and booked_date is None:
            raise ValueError("'booked_time' requires 'booked_date'")
        if booked_date is not None:
            if "booked_at" in data:
                raise ValueError("Supply either 'booked_at' or 'booked_date', not both")
            try:
                day = date.fromisoformat(str(booked_date))
                clock = time.fromisoformat(str(booked_time)) if booked_time else time()
            except ValueError:
                raise ValueError("'booked_date'/'booked_time' must be ISO formatted")
            data["booked_at"] = datetime.combine(day, clock)
        return data


class BookingUpdate(NormalizedRequest):
    field_aliases = BOOKING_FIELD_ALIASES
    forbidden_fields = frozenset({"user_id", "userId", "dorm_id", "room_id"})

    move_in_date: Optional[date] = None
    stay_duration: Optional[int] = Field(None, ge=0)
    duration_type: Optional[DurationType] = None
    payment_method: Optional[PaymentMethod] = None
    payment_slip_url: Optional[str] = Field(None, max_length=500)
    booking_fee_paid: Optional[float] = Field(None, ge=0)
    total_amount: Optional[float] = Field(None, ge=0)
    status: Optional[BookingStatus] = None

    @model_validator(mode="after")
    def reject_null_required(self):
        required = (
            "stay_duration", "duration_type", "payment_method",
            "booking_fee_paid", "total_amount", "status",
        )
        for name in required:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"'{name}' cannot be null")
        return self


class BookingResponse(BaseModel):
    id: int
    user_id: int
    dorm_id: int
    room_id: Optional[int]
    move_in_date: Optional[date]
    stay_duration: int
    duration_type: str
    payment_method: str
    payment_slip_url: Optional[str]
    booking_fee_paid: float
    total_amount: float
    status: BookingStatus
    booked_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BookingCreateResponse(BookingResponse):
    # Set when the booking was stored but the room could not be reserved
    reservation_warning: Optional[str] = None


class DivergentBooking(BaseModel):
    booking: BookingResponse
    room_status: Optional[str]
    room_resident_id: Optional[int]
    reason: str
