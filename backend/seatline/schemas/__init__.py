from seatline.schemas.booking import (
    CheckoutRequest, CheckoutResponse, BookingResponse, BookingCancelResponse, ErrorResponse,
)
from seatline.schemas.trip import SeatMapResponse, SeatResponse

__all__ = [
    "CheckoutRequest", "CheckoutResponse", "BookingResponse", "BookingCancelResponse", "ErrorResponse",
    "SeatMapResponse", "SeatResponse",
]
