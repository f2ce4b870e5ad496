"""
Checkout orchestration with concurrency-safe seat sales.

CONCURRENCY STRATEGY: Per-seat CAS, all-or-nothing per checkout
===============================================================

Problem:
  Many passengers race for the same seats of a trip. Reading "seat 7 is
  available" and then writing "seat 7 is sold" lets two of them win.

Solution:
  1. Load the trip (read-only catalog) and seed its seats on first use
  2. Resolve every requested seat; if any is not available, reject the
     whole request. A checkout never sells some seats and rejects others
  3. Price the seats (base fare, or a pickup/dropoff segment share)
  4. Hand the plan to the configured CommitStrategy, which claims each seat
     with a conditional UPDATE ... WHERE status = 'available' and writes
     booking + payment. Exactly one concurrent claimant can win a seat;
     a loser's already-claimed seats are returned before it answers
  5. After commit, schedule the confirmation notification. Delivery runs
     detached and can never undo the sale

  Synchronous payment methods sell seats outright (booking confirmed).
  Asynchronous ones (COD by default) put the seats on hold with the booking
  pending; the reaper cancels it if payment is not confirmed within the TTL.

No lock is taken across seats or trips, contention is per seat row.
"""

import time
import uuid
from datetime import timedelta
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.db.base import utcnow
from seatline.models.booking import Booking, BookingStatus
from seatline.models.payment import PaymentStatus
from seatline.models.seat import SeatStatus
from seatline.services import booking_records, pricing, seat_inventory
from seatline.services.cache_service import invalidate_seat_map
from seatline.services.interfaces.commit import CheckoutPlan, CommitStrategy, ConfirmPlan, SeatClaim
from seatline.services.notification_service import notify_cancelled_after_commit, notify_confirmed_after_commit
from seatline.services.strategy_factory import get_committer
from seatline.services.trip_service import TripSnapshot, get_trip_snapshot
from seatline.core.config import get_settings
from seatline.core.exceptions import (
    BookingError,
    CapacityError,
    ConflictError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from seatline.core.metrics import checkout_latency, record_checkout_attempt
from seatline.core.logging import get_logger

logger = get_logger(__name__)

PAYMENT_METHODS = ("banking", "momo", "cod")


def is_async_payment(method: str) -> bool:
    return method in get_settings().ASYNC_PAYMENT_METHODS


async def checkout(
    db: AsyncSession,
    trip_id: int,
    seat_numbers: Sequence,
    passenger: dict,
    payment_method: str,
    pickup_id: Optional[int] = None,
    dropoff_id: Optional[int] = None,
    user_id: Optional[int] = None,
    committer: Optional[CommitStrategy] = None,
) -> dict:
    """
    Sell the requested seats of a trip in one all-or-nothing step.
    Returns the confirmation payload shown to the passenger.
    """
    committer = committer or get_committer()
    started = time.perf_counter()
    try:
        result = await _checkout(
            db, committer, trip_id, seat_numbers, passenger, payment_method,
            pickup_id, dropoff_id, user_id,
        )
    except ConflictError:
        record_checkout_attempt("conflict", committer.name)
        raise
    except InternalError:
        record_checkout_attempt("error", committer.name)
        raise
    except BookingError as e:
        record_checkout_attempt("rejected", committer.name)
        logger.info("checkout_rejected", trip_id=trip_id, reason=e.message)
        raise
    finally:
        checkout_latency.observe(time.perf_counter() - started)

    record_checkout_attempt("success", committer.name)
    return result


def _validate_request(trip_id, seat_numbers, passenger, payment_method) -> None:
    if trip_id is None:
        raise ValidationError("tripId is required")
    if not seat_numbers:
        raise ValidationError("seatNumbers must contain at least one seat")
    if not passenger or not passenger.get("name") or not passenger.get("phone"):
        raise ValidationError("Passenger name and phone are required")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Unsupported payment method {payment_method!r}")


async def _checkout(
    db: AsyncSession,
    committer: CommitStrategy,
    trip_id: int,
    seat_numbers: Sequence,
    passenger: dict,
    payment_method: str,
    pickup_id: Optional[int],
    dropoff_id: Optional[int],
    user_id: Optional[int],
) -> dict:
    _validate_request(trip_id, seat_numbers, passenger, payment_method)

    # Step 1: Trip, route and bus (read-only)
    trip = await get_trip_snapshot(db, trip_id)
    if trip.seat_count < 1:
        raise CapacityError("Bus seat capacity is not configured for this trip")

    # Step 2: Seed inventory on first use
    await seat_inventory.ensure_seeded(db, trip.id, trip.seat_count)

    # Step 3: Resolve seats, all must be available
    records = await seat_inventory.lookup(db, trip.id, seat_numbers, trip.seat_count)
    taken = [r.seat_label for r in records if r.status != SeatStatus.AVAILABLE]
    if taken:
        logger.info("checkout_seats_unavailable", trip_id=trip.id, seats=taken)
        raise ConflictError(f"Seats already held or sold: {', '.join(taken)}")
    seats = [SeatClaim(seat_id=r.id, label=r.seat_label) for r in records]

    # Step 4: Price
    unit_price = pricing.price_per_seat(
        trip.base_price, trip.stops, pickup_id, dropoff_id, trip.total_distance_km
    )

    # Step 5-7: Claim seats and write booking + payment
    pending = is_async_payment(payment_method)
    now = utcnow()
    hold_expires_at = now + timedelta(minutes=get_settings().REAPER_TTL_MINUTES) if pending else None
    plan = CheckoutPlan(
        booking_id=str(uuid.uuid4()),
        payment_id=str(uuid.uuid4()),
        trip_id=trip.id,
        user_id=user_id,
        seats=seats,
        seat_status=SeatStatus.HELD if pending else SeatStatus.SOLD,
        hold_expires_at=hold_expires_at,
        booking_status=BookingStatus.PENDING if pending else BookingStatus.CONFIRMED,
        payment_status=PaymentStatus.PENDING if pending else PaymentStatus.SUCCESS,
        payment_method=payment_method,
        price_per_seat=unit_price,
        total_price=unit_price * len(seats),
        passenger=_passenger(passenger),
        created_at=now,
        snapshot=_snapshot(trip),
        transaction_code=f"TX{uuid.uuid4().hex[:16].upper()}",
    )
    await committer.commit_checkout(db, plan)

    logger.info(
        "checkout_completed",
        booking_id=plan.booking_id,
        trip_id=trip.id,
        seats=plan.seat_labels,
        total=plan.total_price,
        status=plan.booking_status,
        strategy=committer.name,
    )

    response = _checkout_response(plan, trip)

    # Step 8: Post-commit side effects
    await invalidate_seat_map(trip.id)
    notify_confirmed_after_commit(response)
    return response


def _passenger(passenger: dict) -> dict:
    return {
        "name": passenger.get("name"),
        "phone": passenger.get("phone"),
        "email": passenger.get("email"),
        "note": passenger.get("note"),
    }


def _snapshot(trip: TripSnapshot) -> dict:
    return {
        "route_from": trip.route_from,
        "route_to": trip.route_to,
        "route_duration_min": trip.route_duration_min,
        "bus_type": trip.bus_type,
        "bus_seat_count": trip.seat_count,
        "departure_time": trip.departure_time,
        "arrival_time": trip.arrival_time,
    }


def _checkout_response(plan: CheckoutPlan, trip: TripSnapshot) -> dict:
    return {
        "bookingId": plan.booking_id,
        "paymentId": plan.payment_id,
        "status": plan.booking_status,
        "route": {
            "from": trip.route_from,
            "to": trip.route_to,
            "durationMin": trip.route_duration_min,
        },
        "times": {
            "departureTime": trip.departure_time,
            "arrivalTime": trip.arrival_time,
        },
        "bus": {"busType": trip.bus_type, "seatCount": trip.seat_count},
        "seats": plan.seat_labels,
        "passenger": plan.passenger,
        "pricePerSeat": plan.price_per_seat,
        "totalAmount": plan.total_price,
        "paymentMethod": plan.payment_method,
        "holdExpiresAt": plan.hold_expires_at,
    }


def booking_summary(booking: Booking) -> dict:
    """Plain-data view of a booking for notifications."""
    return {
        "bookingId": booking.id,
        "status": booking.status,
        "route": {"from": booking.route_from, "to": booking.route_to},
        "seats": list(booking.seat_labels or []),
        "passenger": booking.passenger,
        "totalAmount": booking.total_price,
        "paymentMethod": booking.payment_method,
        "createdAt": booking.created_at,
    }


async def get_booking(db: AsyncSession, booking_id: str) -> Booking:
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


async def list_bookings(
    db: AsyncSession,
    user_id: Optional[int] = None,
    phone: Optional[str] = None,
    limit: int = 100,
) -> list[Booking]:
    """Bookings of a user or a passenger phone number, newest first."""
    stmt = select(Booking)
    if user_id is not None:
        stmt = stmt.where(Booking.user_id == user_id)
    elif phone:
        stmt = stmt.where(Booking.passenger_phone == phone)
    result = await db.execute(
        stmt.order_by(Booking.created_at.desc())
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def confirm_payment(
    db: AsyncSession,
    booking_id: str,
    committer: Optional[CommitStrategy] = None,
) -> Booking:
    """
    Settle the payment of a pending booking: booking -> confirmed,
    held seats -> sold. Rejected once the hold has lapsed.
    """
    committer = committer or get_committer()
    booking = await get_booking(db, booking_id)
    if booking.status != BookingStatus.PENDING:
        raise ConflictError(f"Booking is {booking.status}, not awaiting payment")

    trip_id = booking.trip_id
    expected_seats = len(booking.seat_labels or [])
    payment_id = booking.payment_id

    held = [
        SeatClaim(seat_id=s.id, label=s.seat_label, hold_expires_at=s.hold_expires_at)
        for s in await seat_inventory.seats_for_booking(db, booking_id)
        if s.status == SeatStatus.HELD
    ]
    if len(held) != expected_seats:
        raise ConflictError("Seat hold has been released, please book again")

    now = utcnow()
    plan = ConfirmPlan(
        booking_id=booking_id,
        payment_id=payment_id,
        seats=held,
        not_before=now - timedelta(minutes=get_settings().REAPER_TTL_MINUTES),
        settled_at=now,
    )
    await committer.commit_confirmation(db, plan)

    logger.info("payment_confirmed", booking_id=booking_id, seats=[s.label for s in held])
    await invalidate_seat_map(trip_id)

    booking = await get_booking(db, booking_id)
    notify_confirmed_after_commit(booking_summary(booking))
    return booking


async def cancel_booking(
    db: AsyncSession,
    booking_id: str,
    user_id: Optional[int] = None,
) -> Booking:
    """
    Cancel a booking and release its held or sold seats.
    With `user_id`, only the owner may cancel.
    """
    booking = await get_booking(db, booking_id)

    if user_id is not None and booking.user_id != user_id:
        raise NotFoundError("Booking not found")
    if booking.status == BookingStatus.CANCELLED:
        raise ValidationError("Booking is already cancelled")
    if booking.status == BookingStatus.COMPLETED:
        raise ConflictError("Completed bookings cannot be cancelled")

    prior_status = booking.status
    trip_id = booking.trip_id
    payment_id = booking.payment_id

    try:
        cancelled = await booking_records.transition_booking(
            db, booking_id, expected=prior_status, target=BookingStatus.CANCELLED
        )
        if not cancelled:
            raise ConflictError("Booking changed while cancelling, please retry")
        released = await seat_inventory.release_for_booking(db, booking_id)
        await booking_records.set_payment_status(
            db, payment_id, PaymentStatus.PENDING, PaymentStatus.FAILED
        )
        await db.commit()
    except BookingError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("booking_cancel_failed", booking_id=booking_id, error=str(e))
        raise InternalError("Booking could not be cancelled") from e

    logger.info(
        "booking_cancelled",
        booking_id=booking_id,
        user_id=user_id,
        trip_id=trip_id,
        seats_released=released,
    )
    await invalidate_seat_map(trip_id)

    booking = await get_booking(db, booking_id)
    summary = booking_summary(booking)
    summary["reason"] = "cancelled on request"
    notify_cancelled_after_commit(booking.passenger_email, summary)
    return booking
