"""
Failure paths of both commit strategies.

Whichever strategy runs, a failed checkout must leave every seat as it was
and no booking or payment behind.
"""

import asyncio
import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from seatline.core.exceptions import ConflictError, InternalError
from seatline.db.base import utcnow
from seatline.models.booking import Booking, BookingStatus
from seatline.models.payment import Payment, PaymentStatus
from seatline.models.seat import SeatStatus
from seatline.services import booking_records, booking_service, seat_inventory
from seatline.services.interfaces.commit import CheckoutPlan, SeatClaim
from seatline.services.strategy_factory import get_commit_strategy

PASSENGER = {"name": "Tran Thi B", "phone": "0987654321"}


async def _statuses(db, trip_id):
    return {r.seat_label: r.status for r in await seat_inventory.seat_map(db, trip_id)}


async def _count(db, model):
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


def _plan(trip_id, seats):
    now = utcnow()
    return CheckoutPlan(
        booking_id=str(uuid.uuid4()),
        payment_id=str(uuid.uuid4()),
        trip_id=trip_id,
        user_id=None,
        seats=[SeatClaim(seat_id=s.id, label=s.seat_label) for s in seats],
        seat_status=SeatStatus.SOLD,
        hold_expires_at=None,
        booking_status=BookingStatus.CONFIRMED,
        payment_status=PaymentStatus.SUCCESS,
        payment_method="banking",
        price_per_seat=100_000,
        total_price=100_000 * len(seats),
        passenger=dict(PASSENGER, email=None, note=None),
        created_at=now,
    )


@pytest.mark.asyncio
async def test_storage_failure_leaves_no_trace(db_session, committer, test_trip, monkeypatch):
    async def broken_insert_payment(db, plan):
        raise SQLAlchemyError("payments table unavailable")

    monkeypatch.setattr(booking_records, "insert_payment", broken_insert_payment)

    with pytest.raises(InternalError):
        await booking_service.checkout(
            db_session, test_trip.id, [1, 2], PASSENGER, "banking", committer=committer
        )

    assert set((await _statuses(db_session, test_trip.id)).values()) == {SeatStatus.AVAILABLE}
    assert await _count(db_session, Booking) == 0
    assert await _count(db_session, Payment) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [RuntimeError("payment gateway crashed"), asyncio.CancelledError()],
    ids=["crash", "cancelled"],
)
async def test_interrupted_checkout_leaves_no_trace(db_session, committer, test_trip, monkeypatch, error):
    """A request cancelled or crashing after the seats were claimed gives them back."""
    async def interrupted_insert_payment(db, plan):
        raise error

    monkeypatch.setattr(booking_records, "insert_payment", interrupted_insert_payment)

    with pytest.raises(type(error)):
        await booking_service.checkout(
            db_session, test_trip.id, [1, 2], PASSENGER, "banking", committer=committer
        )

    assert set((await _statuses(db_session, test_trip.id)).values()) == {SeatStatus.AVAILABLE}
    assert await _count(db_session, Booking) == 0
    assert await _count(db_session, Payment) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [RuntimeError("payment gateway crashed"), asyncio.CancelledError()],
    ids=["crash", "cancelled"],
)
async def test_interrupted_confirmation_keeps_booking_pending(
    db_session, committer, test_trip, monkeypatch, error
):
    result = await booking_service.checkout(
        db_session, test_trip.id, [1, 2], PASSENGER, "cod", committer=committer
    )

    async def interrupted_settle(*args, **kwargs):
        raise error

    monkeypatch.setattr(booking_records, "set_payment_status", interrupted_settle)

    with pytest.raises(type(error)):
        await booking_service.confirm_payment(db_session, result["bookingId"], committer=committer)

    booking = await booking_service.get_booking(db_session, result["bookingId"])
    assert booking.status == BookingStatus.PENDING
    statuses = await _statuses(db_session, test_trip.id)
    assert (statuses["1"], statuses["2"]) == (SeatStatus.HELD, SeatStatus.HELD)
    holders = await seat_inventory.seats_for_booking(db_session, result["bookingId"])
    assert [s.seat_label for s in holders] == ["1", "2"]


@pytest.mark.asyncio
async def test_lost_race_mid_checkout_returns_claimed_seats(db_session, committer, test_trip):
    """Seat 3 is sold after the availability check; seats 1 and 2 must come back."""
    await seat_inventory.ensure_seeded(db_session, test_trip.id, 4)
    seats = await seat_inventory.lookup(db_session, test_trip.id, [1, 2, 3], 4)
    plan = _plan(test_trip.id, seats)

    await seat_inventory.transition(
        db_session, seats[2].id, SeatStatus.AVAILABLE, SeatStatus.SOLD, holder_booking_id="someone-else"
    )
    await db_session.commit()

    with pytest.raises(ConflictError):
        await committer.commit_checkout(db_session, plan)

    assert await _statuses(db_session, test_trip.id) == {
        "1": SeatStatus.AVAILABLE,
        "2": SeatStatus.AVAILABLE,
        "3": SeatStatus.SOLD,
        "4": SeatStatus.AVAILABLE,
    }
    assert await _count(db_session, Booking) == 0


@pytest.mark.asyncio
async def test_successful_commit_writes_linked_records(db_session, committer, test_trip):
    await seat_inventory.ensure_seeded(db_session, test_trip.id, 4)
    seats = await seat_inventory.lookup(db_session, test_trip.id, [1, 4], 4)
    plan = _plan(test_trip.id, seats)

    await committer.commit_checkout(db_session, plan)

    booking = await booking_service.get_booking(db_session, plan.booking_id)
    assert booking.payment_id == plan.payment_id
    assert booking.seat_labels == ["1", "4"]
    assert booking.total_price == 200_000

    payment = (await db_session.execute(
        select(Payment).where(Payment.id == plan.payment_id).execution_options(populate_existing=True)
    )).scalar_one()
    assert payment.amount == booking.total_price
    assert payment.status == PaymentStatus.SUCCESS
    assert payment.settled_at is not None

    holders = await seat_inventory.seats_for_booking(db_session, plan.booking_id)
    assert [s.seat_label for s in holders] == ["1", "4"]


@pytest.mark.asyncio
async def test_confirmation_after_seat_reclaimed(db_session, committer, test_trip):
    """A pay-later booking whose hold was swept cannot be confirmed."""
    result = await booking_service.checkout(
        db_session, test_trip.id, [1], PASSENGER, "cod", committer=committer
    )
    await seat_inventory.release_for_booking(db_session, result["bookingId"])
    await db_session.commit()

    with pytest.raises(ConflictError):
        await booking_service.confirm_payment(db_session, result["bookingId"], committer=committer)

    booking = await booking_service.get_booking(db_session, result["bookingId"])
    assert booking.status == BookingStatus.PENDING


def test_strategy_factory():
    assert get_commit_strategy("transactional").name == "transactional"
    assert get_commit_strategy("compensating").name == "compensating"
    with pytest.raises(ValueError):
        get_commit_strategy("two-phase")
