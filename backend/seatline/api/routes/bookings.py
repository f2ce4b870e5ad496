"""
Booking endpoints: checkout with concurrency-safe seat sales, payment
confirmation, cancellation and lookup.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.db.session import get_db
from seatline.schemas.booking import (
    BookingCancelResponse,
    BookingResponse,
    CheckoutRequest,
    CheckoutResponse,
    ErrorResponse,
)
from seatline.services.booking_service import (
    cancel_booking,
    checkout,
    confirm_payment,
    get_booking,
    list_bookings,
)
from seatline.core.security import get_current_user_id, get_optional_user_id
from seatline.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["Bookings"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def checkout_endpoint(
    request: CheckoutRequest,
    user_id: Optional[int] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Buy seats on a trip.

    All requested seats are sold together or not at all. If another checkout
    wins any of the seats first, the request fails with 409 and none of its
    seats stay claimed. Anonymous checkout is allowed; a bearer token links
    the booking to the caller.
    """
    return await checkout(
        db,
        trip_id=request.trip_id,
        seat_numbers=request.seat_numbers,
        passenger=request.passenger.model_dump(),
        payment_method=request.payment_method,
        pickup_id=request.stops.pickup_id if request.stops else None,
        dropoff_id=request.stops.dropoff_id if request.stops else None,
        user_id=user_id,
    )


@router.post("/{booking_id}/confirm-payment", response_model=BookingResponse, responses=ERROR_RESPONSES)
async def confirm_payment_endpoint(booking_id: str, db: AsyncSession = Depends(get_db)):
    """Settle a pending (pay-later) booking before its hold expires."""
    return await confirm_payment(db, booking_id)


@router.delete("/{booking_id}", response_model=BookingCancelResponse, responses=ERROR_RESPONSES)
async def cancel_booking_endpoint(
    booking_id: str,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a booking and release its seats back to the trip."""
    booking = await cancel_booking(db, booking_id, user_id)
    return BookingCancelResponse(
        message="Booking cancelled successfully",
        booking_id=booking.id,
        status=booking.status,
    )


@router.get("/", response_model=list[BookingResponse])
async def list_bookings_endpoint(
    user_id: Optional[int] = Query(None, alias="userId"),
    phone: Optional[str] = Query(None),
    caller_id: Optional[int] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Bookings for a user id or passenger phone; defaults to the caller's own."""
    if user_id is None and phone is None:
        user_id = caller_id
    return await list_bookings(db, user_id=user_id, phone=phone)


@router.get("/{booking_id}", response_model=BookingResponse, responses={404: {"model": ErrorResponse}})
async def get_booking_endpoint(booking_id: str, db: AsyncSession = Depends(get_db)):
    return await get_booking(db, booking_id)
