"""
Authorization decisions consumed by room and booking routes.

Both checks run after the target has been loaded, so a missing room or
booking is reported as not found rather than as access denied.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from lumiq.core.exceptions import AccessDenied, DormNotFound
from lumiq.core.security import Caller
from lumiq.models.booking import Booking
from lumiq.models.dorm import Dorm


async def get_dorm(db: AsyncSession, dorm_id: int) -> Dorm:
    dorm = await db.get(Dorm, dorm_id)
    if dorm is None:
        raise DormNotFound(f"Dorm {dorm_id} not found")
    return dorm


async def is_dorm_admin(db: AsyncSession, caller: Caller, dorm_id: int) -> bool:
    if not caller.is_admin:
        return False
    dorm = await db.get(Dorm, dorm_id)
    return dorm is not None and dorm.admin_id == caller.user_id


async def ensure_dorm_admin(db: AsyncSession, caller: Caller, dorm_id: int) -> Dorm:
    """Caller must be the admin who owns the dorm."""
    dorm = await get_dorm(db, dorm_id)
    if not caller.is_admin or dorm.admin_id != caller.user_id:
        raise AccessDenied(f"Admin access to dorm {dorm_id} required")
    return dorm


async def ensure_booking_access(db: AsyncSession, caller: Caller, booking: Booking) -> None:
    """Caller must own the booking or administer its dorm."""
    if booking.user_id == caller.user_id:
        return
    if await is_dorm_admin(db, caller, booking.dorm_id):
        return
    raise AccessDenied(f"Access to booking {booking.id} denied")
