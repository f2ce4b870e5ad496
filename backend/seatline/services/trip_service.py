"""
Read-only access to the trip catalog.

The checkout path copies what it needs out of the ORM objects into a
TripSnapshot up front. A rollback expires every loaded instance, and
touching an expired attribute on an AsyncSession would trigger lazy IO.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.models.seat import SeatStatus
from seatline.models.trip import Trip
from seatline.services import seat_inventory
from seatline.services.cache_service import get_cached_seat_map, set_cached_seat_map
from seatline.services.pricing import StopPoint
from seatline.core.exceptions import NotFoundError, ValidationError
from seatline.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TripSnapshot:
    id: int
    base_price: int
    seat_count: int
    route_from: str
    route_to: str
    route_duration_min: Optional[int]
    total_distance_km: Optional[float]
    stops: tuple[StopPoint, ...]
    bus_type: str
    departure_time: Optional[datetime]
    arrival_time: Optional[datetime]


async def get_trip(db: AsyncSession, trip_id: int) -> Trip:
    """Get a trip with its route, stops and bus loaded."""
    if trip_id is None:
        raise ValidationError("tripId is required")

    result = await db.execute(select(Trip).where(Trip.id == trip_id))
    trip = result.scalar_one_or_none()

    if not trip:
        raise NotFoundError(f"Trip {trip_id} not found")
    return trip


async def get_trip_snapshot(db: AsyncSession, trip_id: int) -> TripSnapshot:
    trip = await get_trip(db, trip_id)
    route = trip.route
    bus = trip.bus

    return TripSnapshot(
        id=trip.id,
        base_price=trip.base_price or 0,
        seat_count=(bus.seat_count or 0) if bus else 0,
        route_from=(route.from_city or "") if route else "",
        route_to=(route.to_city or "") if route else "",
        route_duration_min=route.estimated_duration_min if route else None,
        total_distance_km=route.total_distance_km if route else None,
        stops=tuple(
            StopPoint(id=s.id, order=s.order, km_from_start=s.km_from_start)
            for s in (route.stops if route else [])
        ),
        bus_type=(bus.bus_type or "") if bus else "",
        departure_time=trip.start_time,
        arrival_time=trip.end_time,
    )


async def get_trip_seat_map(db: AsyncSession, trip_id: int) -> dict:
    """
    Seat map of a trip, seeding the inventory on first access.
    Served from Redis when cached; the cache is dropped on every seat change.
    """
    cached = await get_cached_seat_map(trip_id)
    if cached:
        cached["cached"] = True
        return cached

    trip = await get_trip_snapshot(db, trip_id)
    if trip.seat_count >= 1:
        await seat_inventory.ensure_seeded(db, trip.id, trip.seat_count)

    records = await seat_inventory.seat_map(db, trip.id)
    data = {
        "tripId": trip.id,
        "seatCount": trip.seat_count,
        "available": sum(1 for r in records if r.status == SeatStatus.AVAILABLE),
        "seats": [
            {"label": r.seat_label, "status": r.status, "holdExpiresAt": r.hold_expires_at}
            for r in records
        ],
        "cached": False,
    }
    await set_cached_seat_map(trip.id, data)
    return data
