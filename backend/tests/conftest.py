"""
Pytest fixtures for test database, client, and authentication.

Each test gets its own SQLite file (aiosqlite), so tests are isolated and
concurrent sessions really contend for the same rows. Set TEST_DATABASE_URL
to run the suite against PostgreSQL instead.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import date
from typing import AsyncGenerator

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from lumiq.main import app
from lumiq.db.base import Base
from lumiq.db.session import get_db
from lumiq.core.security import ROLE_ADMIN, ROLE_STUDENT, create_access_token
from lumiq.models import Booking, Dorm, Room, User


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest_asyncio.fixture
async def engine(tmp_path):
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'lumiq_test.db'}"
    if url.startswith("sqlite"):
        test_engine = create_async_engine(url, connect_args={"timeout": 30})
        # ON DELETE SET NULL on bookings.room_id needs FK enforcement
        event.listen(test_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    else:
        test_engine = create_async_engine(url)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each get a fresh session, committed like get_db."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _add(session: AsyncSession, obj):
    session.add(obj)
    await session.commit()
    await session.refresh(obj)
    return obj


def auth_headers_for(user: User) -> dict:
    token = create_access_token(data={"sub": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await _add(db_session, User(email="admin@lumiq.test", name="Dorm Admin", role=ROLE_ADMIN))


@pytest_asyncio.fixture
async def other_admin(db_session: AsyncSession) -> User:
    return await _add(db_session, User(email="other-admin@lumiq.test", name="Other Admin", role=ROLE_ADMIN))


@pytest_asyncio.fixture
async def student(db_session: AsyncSession) -> User:
    return await _add(db_session, User(email="alice@lumiq.test", name="Alice", role=ROLE_STUDENT))


@pytest_asyncio.fixture
async def other_student(db_session: AsyncSession) -> User:
    return await _add(db_session, User(email="bob@lumiq.test", name="Bob", role=ROLE_STUDENT))


@pytest_asyncio.fixture
async def dorm(db_session: AsyncSession, admin: User) -> Dorm:
    return await _add(db_session, Dorm(name="North Hall", admin_id=admin.id))


@pytest_asyncio.fixture
async def room(db_session: AsyncSession, dorm: Dorm) -> Room:
    """An Available single room on floor 2."""
    return await _add(db_session, Room(
        dorm_id=dorm.id,
        room_number="201",
        room_type="Single",
        capacity=1,
        price_per_month=4500,
        floor=2,
        zone="A",
        images=[],
    ))


@pytest_asyncio.fixture
async def make_room(db_session: AsyncSession, dorm: Dorm):
    """Factory for extra rooms; lifecycle columns must be passed consistently."""

    async def _make(room_number: str, **fields) -> Room:
        values = {
            "dorm_id": dorm.id,
            "room_number": room_number,
            "room_type": "Single",
            "capacity": 1,
            "price_per_month": 4000,
            "floor": 1,
            "images": [],
        }
        values.update(fields)
        return await _add(db_session, Room(**values))

    return _make


@pytest_asyncio.fixture
async def make_booking(db_session: AsyncSession, dorm: Dorm):
    """Factory for bookings inserted directly, bypassing the coordinator."""

    async def _make(user: User, room: Room, status: str = "Pending", **fields) -> Booking:
        values = {
            "user_id": user.id,
            "dorm_id": dorm.id,
            "room_id": room.id,
            "move_in_date": date(2026, 11, 1),
            "stay_duration": 6,
            "status": status,
        }
        values.update(fields)
        return await _add(db_session, Booking(**values))

    return _make


@pytest_asyncio.fixture
async def admin_headers(admin: User) -> dict:
    return auth_headers_for(admin)


@pytest_asyncio.fixture
async def student_headers(student: User) -> dict:
    return auth_headers_for(student)


@pytest_asyncio.fixture
async def other_student_headers(other_student: User) -> dict:
    return auth_headers_for(other_student)


@pytest_asyncio.fixture
async def other_admin_headers(other_admin: User) -> dict:
    return auth_headers_for(other_admin)
