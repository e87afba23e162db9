"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from lumiq.api.routes import rooms, bookings

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(rooms.router)
api_router.include_router(bookings.router)
