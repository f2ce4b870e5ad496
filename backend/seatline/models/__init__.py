from seatline.models.trip import Bus, Route, RouteStop, Trip
from seatline.models.seat import SeatRecord, SeatStatus
from seatline.models.booking import Booking, BookingStatus
from seatline.models.payment import Payment, PaymentStatus

__all__ = [
    "Bus", "Route", "RouteStop", "Trip",
    "SeatRecord", "SeatStatus",
    "Booking", "BookingStatus",
    "Payment", "PaymentStatus",
]
