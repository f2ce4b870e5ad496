"""
Pytest fixtures for test database, client, trips and authentication.

Runs against a file-backed SQLite database so separate sessions really are
separate connections racing for the same rows, the way concurrent requests
do against PostgreSQL. Tables are created and dropped per test.
"""

import os
import tempfile
from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator

# Must be set before the app modules read their settings
_DB_DIR = tempfile.mkdtemp(prefix="seatline-tests-")
os.environ["DATABASE_URL"] = os.environ.get("TEST_DATABASE_URL") or (
    f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'seatline_test.db')}"
)
os.environ["REDIS_ENABLED"] = "false"
os.environ["REAPER_ENABLED"] = "false"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.main import app
from seatline.db.base import Base
from seatline.db.session import AsyncSessionLocal, engine, get_db
from seatline.core.security import create_access_token
from seatline.models.trip import Bus, Route, RouteStop, Trip
from seatline.services.commit_strategies import CompensatingCommit, TransactionalCommit
from seatline.services.notification_service import Notifier, get_dispatcher, set_notifier

TEST_USER_ID = 42


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield session, then drop tables for isolation."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        yield session

    await get_dispatcher().drain()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Pooled aiosqlite connections must not outlive this test's event loop
    await engine.dispose()


@pytest.fixture
def session_factory(db_session):
    """Factory for independent sessions (concurrent callers, the reaper)."""
    return AsyncSessionLocal


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the DB dependency with the test session."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def notifier() -> Notifier:
    """Fresh in-memory notifier per test; its outbox records every mail."""
    n = Notifier()
    set_notifier(n)
    return n


@pytest.fixture(params=[TransactionalCommit, CompensatingCommit], ids=["transactional", "compensating"])
def committer(request):
    """Every checkout property is checked against both commit strategies."""
    return request.param()


@pytest.fixture
def auth_token() -> str:
    return create_access_token(data={"sub": str(TEST_USER_ID)})


@pytest.fixture
def auth_headers(auth_token: str) -> dict:
    """Authorization headers with Bearer token."""
    return {"Authorization": f"Bearer {auth_token}"}


async def make_trip(
    db: AsyncSession,
    seat_count=4,
    base_price=100_000,
    stops=((0, "Ha Noi"), (40, "Phu Ly"), (80, "Nam Dinh")),
    total_distance_km=80,
    plate="29B-000.01",
) -> Trip:
    bus = Bus(license_plate=plate, bus_type="Limousine", seat_count=seat_count)
    route = Route(
        name=f"{stops[0][1]} - {stops[-1][1]}",
        from_city=stops[0][1],
        to_city=stops[-1][1],
        total_distance_km=total_distance_km,
        estimated_duration_min=120,
    )
    db.add_all([bus, route])
    await db.flush()

    for order, (km, name) in enumerate(stops, start=1):
        db.add(RouteStop(route_id=route.id, stop_name=name, order=order, km_from_start=km))

    departure = datetime.now(timezone.utc) + timedelta(days=3)
    trip = Trip(
        route_id=route.id,
        bus_id=bus.id,
        start_time=departure,
        end_time=departure + timedelta(hours=2),
        base_price=base_price,
    )
    db.add(trip)
    await db.commit()
    # Services load the catalog themselves; keep the identity map clean
    db.expunge_all()
    return trip


@pytest_asyncio.fixture
async def test_trip(db_session: AsyncSession) -> Trip:
    """Trip on a 4-seat bus, base price 100,000, stops at 0/40/80 km."""
    return await make_trip(db_session)


@pytest_asyncio.fixture
async def stop_ids(db_session: AsyncSession, test_trip: Trip) -> list[int]:
    """Route stop ids of test_trip in route order."""
    result = await db_session.execute(
        select(RouteStop.id).where(RouteStop.route_id == test_trip.route_id).order_by(RouteStop.order)
    )
    return list(result.scalars().all())


@pytest_asyncio.fixture
async def unconfigured_trip(db_session: AsyncSession) -> Trip:
    """Trip whose bus has no known seat capacity."""
    return await make_trip(db_session, seat_count=None, plate="29B-000.02")


@pytest.fixture
def passenger() -> dict:
    return {"name": "Nguyen Van A", "phone": "0901234567", "email": "a@example.com"}
