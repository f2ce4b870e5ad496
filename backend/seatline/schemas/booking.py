"""
Pydantic schemas for checkout and booking request/response validation.

Wire format is camelCase (tripId, seatNumbers, ...); Python attributes stay
snake_case.
"""

from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Passenger(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., min_length=3, max_length=32)
    email: Optional[str] = Field(None, max_length=255)
    note: Optional[str] = Field(None, max_length=1000)


class StopSelection(CamelModel):
    pickup_id: int
    dropoff_id: int


class CheckoutRequest(CamelModel):
    trip_id: int
    seat_numbers: list[Union[int, str]] = Field(..., min_length=1, max_length=50)
    passenger: Passenger
    payment_method: Literal["banking", "momo", "cod"] = "banking"
    stops: Optional[StopSelection] = None


class RouteInfo(CamelModel):
    from_: str = Field("", alias="from")
    to: str = ""
    duration_min: Optional[int] = None


class TimesInfo(CamelModel):
    departure_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None


class BusInfo(CamelModel):
    bus_type: str = ""
    seat_count: int


class CheckoutResponse(CamelModel):
    booking_id: str
    payment_id: str
    status: str
    route: RouteInfo
    times: TimesInfo
    bus: BusInfo
    seats: list[str]
    passenger: Passenger
    price_per_seat: int
    total_amount: int
    payment_method: str
    hold_expires_at: Optional[datetime] = None


class BookingResponse(CamelModel):
    id: str
    trip_id: int
    user_id: Optional[int]
    seat_labels: list[str]
    status: str
    passenger: Passenger
    price_per_seat: int
    total_price: int
    payment_id: Optional[str]
    payment_method: str
    route_from: Optional[str]
    route_to: Optional[str]
    departure_time: Optional[datetime]
    arrival_time: Optional[datetime]
    created_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class BookingCancelResponse(CamelModel):
    message: str
    booking_id: str
    status: str


class ErrorResponse(BaseModel):
    error: str
