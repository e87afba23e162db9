"""
Booking model: a student's request to occupy a room.

Key design decisions:
- Bookings are never deleted; cancellation is a status change
- The room's own status is the source of truth for occupancy. A booking can
  stay Pending while its room is held by someone else
- room_id is nulled (not cascaded) if the room is deleted, keeping history
"""

import enum

from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, ForeignKey, Index, CheckConstraint

from lumiq.db.base import Base, TimestampMixin


class BookingStatus(str, enum.Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"


ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    dorm_id = Column(Integer, ForeignKey("dorms.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="SET NULL"), nullable=True, index=True)
    move_in_date = Column(Date, nullable=True)
    stay_duration = Column(Integer, nullable=False, default=0)
    duration_type = Column(String(10), nullable=False, default="months")
    payment_method = Column(String(10), nullable=False, default="card")
    payment_slip_url = Column(String(500), nullable=True)
    booking_fee_paid = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)
    booked_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('Pending', 'Confirmed', 'Cancelled')", name="check_booking_status"
        ),
        CheckConstraint("duration_type IN ('months', 'years')", name="check_booking_duration_type"),
        CheckConstraint("payment_method IN ('card', 'qr', 'slip')", name="check_booking_payment_method"),
        CheckConstraint("stay_duration >= 0", name="check_booking_stay_duration"),
        # Active-booking guard on room deletion
        Index("ix_bookings_room_status", "room_id", "status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, user={self.user_id}, room={self.room_id}, status={self.status})>"
