"""
Booking and payment row writes shared by the commit strategies, the
cancellation path and the reaper.

Status changes on bookings follow the same rule as seats: a conditional
UPDATE guarded on the expected prior status, reporting whether it applied.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.db.base import utcnow
from seatline.models.booking import Booking
from seatline.models.payment import Payment, PaymentStatus
from seatline.services.interfaces.commit import CheckoutPlan


async def insert_booking(db: AsyncSession, plan: CheckoutPlan) -> Booking:
    passenger = plan.passenger
    snapshot = plan.snapshot
    booking = Booking(
        id=plan.booking_id,
        trip_id=plan.trip_id,
        user_id=plan.user_id,
        seat_labels=plan.seat_labels,
        status=plan.booking_status,
        passenger_name=passenger["name"],
        passenger_phone=passenger["phone"],
        passenger_email=passenger.get("email"),
        passenger_note=passenger.get("note"),
        price_per_seat=plan.price_per_seat,
        total_price=plan.total_price,
        payment_method=plan.payment_method,
        route_from=snapshot.get("route_from"),
        route_to=snapshot.get("route_to"),
        route_duration_min=snapshot.get("route_duration_min"),
        bus_type=snapshot.get("bus_type"),
        bus_seat_count=snapshot.get("bus_seat_count"),
        departure_time=snapshot.get("departure_time"),
        arrival_time=snapshot.get("arrival_time"),
        created_at=plan.created_at,
        updated_at=plan.created_at,
    )
    db.add(booking)
    await db.flush()
    return booking


async def insert_payment(db: AsyncSession, plan: CheckoutPlan) -> Payment:
    settled = plan.payment_status == PaymentStatus.SUCCESS
    payment = Payment(
        id=plan.payment_id,
        booking_id=plan.booking_id,
        method=plan.payment_method,
        amount=plan.total_price,
        status=plan.payment_status,
        transaction_code=plan.transaction_code,
        settled_at=plan.created_at if settled else None,
        created_at=plan.created_at,
        updated_at=plan.created_at,
    )
    db.add(payment)
    await db.flush()
    return payment


async def link_payment(db: AsyncSession, booking_id: str, payment_id: str) -> None:
    await db.execute(
        update(Booking)
        .where(Booking.id == booking_id)
        .values(payment_id=payment_id, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )


async def write_booking(db: AsyncSession, plan: CheckoutPlan) -> None:
    """Booking, then payment, then back-fill booking.payment_id. Does not commit."""
    await insert_booking(db, plan)
    await insert_payment(db, plan)
    await link_payment(db, plan.booking_id, plan.payment_id)


async def delete_booking(db: AsyncSession, booking_id: str) -> None:
    """Compensation for a half-written checkout. Does not commit."""
    await db.execute(
        delete(Payment).where(Payment.booking_id == booking_id).execution_options(synchronize_session=False)
    )
    await db.execute(
        delete(Booking).where(Booking.id == booking_id).execution_options(synchronize_session=False)
    )


async def transition_booking(
    db: AsyncSession,
    booking_id: str,
    expected: str,
    target: str,
    not_before: Optional[datetime] = None,
) -> bool:
    """Compare-and-swap a booking's status. `not_before` also requires created_at >= it."""
    stmt = update(Booking).where(Booking.id == booking_id, Booking.status == expected)
    if not_before is not None:
        stmt = stmt.where(Booking.created_at >= not_before)
    result = await db.execute(
        stmt.values(status=target, updated_at=utcnow()).execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def set_payment_status(
    db: AsyncSession,
    payment_id: Optional[str],
    expected: str,
    target: str,
    settled_at: Optional[datetime] = None,
) -> bool:
    if payment_id is None:
        return False
    values = {"status": target, "updated_at": utcnow()}
    if target == PaymentStatus.SUCCESS:
        values["settled_at"] = settled_at or utcnow()
    result = await db.execute(
        update(Payment)
        .where(Payment.id == payment_id, Payment.status == expected)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
