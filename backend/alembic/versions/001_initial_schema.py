"""Initial schema: users, dorms, rooms, bookings with lifecycle constraints.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Users (read-only here; owned by the auth service)
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'student'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Dorms
    op.create_table(
        "dorms",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("admin_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_dorms_id", "dorms", ["id"])
    op.create_index("ix_dorms_admin_id", "dorms", ["admin_id"])

    # Rooms
    op.create_table(
        "rooms",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("dorm_id", sa.Integer(), sa.ForeignKey("dorms.id"), nullable=False),
        sa.Column("room_number", sa.String(50), nullable=False),
        sa.Column("room_type", sa.String(20), nullable=False, server_default=sa.text("'Single'")),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("price_per_month", sa.Numeric(10, 2), nullable=False),
        sa.Column("floor", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("zone", sa.String(100), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("amenities", sa.Text(), nullable=True),
        sa.Column("images", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'Available'")),
        sa.Column("current_resident_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("expected_move_in_date", sa.Date(), nullable=True),
        sa.Column("expected_available_date", sa.Date(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("dorm_id", "room_number", name="uq_room_number_per_dorm"),
        sa.CheckConstraint("capacity BETWEEN 1 AND 3", name="check_room_capacity"),
        sa.CheckConstraint("price_per_month >= 0", name="check_room_price_non_negative"),
        sa.CheckConstraint("floor >= 1", name="check_room_floor"),
        sa.CheckConstraint("room_type IN ('Single', 'Double', 'Triple')", name="check_room_type"),
        sa.CheckConstraint(
            "status IN ('Available', 'Reserved', 'Occupied', 'Maintenance')",
            name="check_room_status",
        ),
        # A resident exists exactly when the room is Reserved or Occupied
        sa.CheckConstraint(
            "(status IN ('Reserved', 'Occupied') AND current_resident_id IS NOT NULL)"
            " OR (status IN ('Available', 'Maintenance') AND current_resident_id IS NULL)",
            name="check_room_resident_matches_status",
        ),
    )
    op.create_index("ix_rooms_id", "rooms", ["id"])
    op.create_index("ix_rooms_dorm_id", "rooms", ["dorm_id"])
    op.create_index("ix_rooms_current_resident_id", "rooms", ["current_resident_id"])
    # Statistics group a dorm's rooms by status; by-floor groups them by floor
    op.create_index("ix_rooms_dorm_status", "rooms", ["dorm_id", "status"])
    op.create_index("ix_rooms_dorm_floor", "rooms", ["dorm_id", "floor"])
    # Vacancy lookahead: WHERE status = 'Occupied' AND expected_available_date BETWEEN ...
    op.create_index("ix_rooms_status_available_date", "rooms", ["status", "expected_available_date"])

    # Bookings
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("dorm_id", sa.Integer(), sa.ForeignKey("dorms.id"), nullable=False),
        sa.Column(
            "room_id", sa.Integer(),
            sa.ForeignKey("rooms.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("move_in_date", sa.Date(), nullable=True),
        sa.Column("stay_duration", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("duration_type", sa.String(10), nullable=False, server_default=sa.text("'months'")),
        sa.Column("payment_method", sa.String(10), nullable=False, server_default=sa.text("'card'")),
        sa.Column("payment_slip_url", sa.String(500), nullable=True),
        sa.Column("booking_fee_paid", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'Pending'")),
        sa.Column("booked_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('Pending', 'Confirmed', 'Cancelled')", name="check_booking_status"),
        sa.CheckConstraint("duration_type IN ('months', 'years')", name="check_booking_duration_type"),
        sa.CheckConstraint("payment_method IN ('card', 'qr', 'slip')", name="check_booking_payment_method"),
        sa.CheckConstraint("stay_duration >= 0", name="check_booking_stay_duration"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_dorm_id", "bookings", ["dorm_id"])
    op.create_index("ix_bookings_room_id", "bookings", ["room_id"])
    # DeleteRoom's NOT EXISTS guard looks up active bookings per room
    op.create_index("ix_bookings_room_status", "bookings", ["room_id", "status"])


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("rooms")
    op.drop_table("dorms")
    op.drop_table("users")
