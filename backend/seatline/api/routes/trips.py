"""
Trip seat map endpoint.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.db.session import get_db
from seatline.schemas.trip import SeatMapResponse
from seatline.services.trip_service import get_trip_seat_map

router = APIRouter(prefix="/trips", tags=["Trips"])


@router.get("/{trip_id}/seats", response_model=SeatMapResponse)
async def get_seat_map_endpoint(trip_id: int, db: AsyncSession = Depends(get_db)):
    """
    Seat map of a trip. Seats are created on first access.
    Cached in Redis briefly; checkout never relies on this view.
    """
    return await get_trip_seat_map(db, trip_id)
