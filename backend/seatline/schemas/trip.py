"""
Pydantic schemas for the trip seat map.
"""

from datetime import datetime
from typing import Optional

from seatline.schemas.booking import CamelModel


class SeatResponse(CamelModel):
    label: str
    status: str
    hold_expires_at: Optional[datetime] = None


class SeatMapResponse(CamelModel):
    trip_id: int
    seat_count: int
    available: int
    seats: list[SeatResponse]
    cached: bool = False
