"""
Room model: a bookable unit inside exactly one dorm.

Key design decisions:
- `status` and `current_resident_id` are written only by the lifecycle
  service, always through guarded UPDATE statements (compare-and-set)
- A CHECK constraint mirrors the resident invariant so no code path can
  leave a resident on an Available/Maintenance room
- (dorm_id, room_number) is unique; dorm_id never changes after creation
"""

import enum

from sqlalchemy import (
    Column, Integer, String, Text, Date, Numeric, JSON, ForeignKey,
    Index, UniqueConstraint, CheckConstraint,
)

from lumiq.db.base import Base, TimestampMixin


class RoomStatus(str, enum.Enum):
    AVAILABLE = "Available"
    RESERVED = "Reserved"
    OCCUPIED = "Occupied"
    MAINTENANCE = "Maintenance"


class RoomType(str, enum.Enum):
    SINGLE = "Single"
    DOUBLE = "Double"
    TRIPLE = "Triple"


# Statuses in which a room holds a resident
RESIDENT_STATUSES = (RoomStatus.RESERVED.value, RoomStatus.OCCUPIED.value)

# Only the lifecycle operations may write these
LIFECYCLE_FIELDS = frozenset({
    "status",
    "current_resident_id",
    "expected_move_in_date",
    "expected_available_date",
})


class Room(Base, TimestampMixin):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    dorm_id = Column(Integer, ForeignKey("dorms.id"), nullable=False, index=True)
    room_number = Column(String(50), nullable=False)
    room_type = Column(String(20), nullable=False, default=RoomType.SINGLE.value)
    capacity = Column(Integer, nullable=False, default=1)
    price_per_month = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    floor = Column(Integer, nullable=False, default=1)
    zone = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    amenities = Column(Text, nullable=True)
    images = Column(JSON, nullable=False, default=list)

    # Lifecycle
    status = Column(String(20), nullable=False, default=RoomStatus.AVAILABLE.value)
    current_resident_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    expected_move_in_date = Column(Date, nullable=True)
    expected_available_date = Column(Date, nullable=True)

    __table_args__ = (
        UniqueConstraint("dorm_id", "room_number", name="uq_room_number_per_dorm"),
        CheckConstraint("capacity BETWEEN 1 AND 3", name="check_room_capacity"),
        CheckConstraint("price_per_month >= 0", name="check_room_price_non_negative"),
        CheckConstraint("floor >= 1", name="check_room_floor"),
        CheckConstraint(
            "room_type IN ('Single', 'Double', 'Triple')", name="check_room_type"
        ),
        CheckConstraint(
            "status IN ('Available', 'Reserved', 'Occupied', 'Maintenance')",
            name="check_room_status",
        ),
        CheckConstraint(
            "(status IN ('Reserved', 'Occupied') AND current_resident_id IS NOT NULL)"
            " OR (status IN ('Available', 'Maintenance') AND current_resident_id IS NULL)",
            name="check_room_resident_matches_status",
        ),
        # Statistics and by-floor views filter by dorm and group by status/floor
        Index("ix_rooms_dorm_status", "dorm_id", "status"),
        Index("ix_rooms_dorm_floor", "dorm_id", "floor"),
        # Vacancy lookahead: occupied rooms ordered by expected move-out
        Index("ix_rooms_status_available_date", "status", "expected_available_date"),
    )

    @property
    def has_resident(self) -> bool:
        return self.current_resident_id is not None

    def __repr__(self) -> str:
        return (
            f"<Room(id={self.id}, dorm={self.dorm_id}, number={self.room_number}, "
            f"status={self.status}, resident={self.current_resident_id})>"
        )
