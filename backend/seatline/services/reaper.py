"""
Expiry reaper: cancels bookings never paid within the TTL.

Every tick:
  1. cutoff = now - ttl
  2. For each booking with status 'pending' and created_at < cutoff, on its
     own transaction:
       - CAS the booking pending -> cancelled
       - release its *held* seats back to available (guarded on holder)
       - mark its pending payment failed
       - after commit, best-effort cancellation email
     A failure on one booking is logged and rolled back; the others still
     run. The booking stays pending and is picked up again next tick.
  3. Release any held seat whose hold_expires_at has passed and whose holder
     is not a pending booking (holds left behind by a checkout that died
     between claim and compensation)

The reaper only ever moves pending bookings and held seats. Confirmed
bookings and sold seats are never touched, and because every write is
guarded on the expected prior state a seat that was re-sold in the meantime
cannot be released by mistake.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.db.base import utcnow
from seatline.models.booking import Booking, BookingStatus
from seatline.models.payment import PaymentStatus
from seatline.models.seat import SeatStatus
from seatline.services import booking_records, seat_inventory
from seatline.services.cache_service import invalidate_seat_map
from seatline.services.notification_service import Notifier, get_notifier
from seatline.core.metrics import (
    reaper_booking_failures,
    reaper_bookings_cancelled,
    reaper_seats_released,
    reaper_ticks,
)
from seatline.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ReapResult:
    cancelled: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    seats_released: int = 0
    expired_holds_released: int = 0


@dataclass
class _ExpiredBooking:
    id: str
    trip_id: int
    seats: list
    total: int
    created_at: datetime
    email: Optional[str]


class ExpiryReaper:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        ttl_minutes: int = 2,
        interval_seconds: int = 60,
        notifier: Optional[Notifier] = None,
    ):
        self.session_factory = session_factory
        self.ttl = timedelta(minutes=ttl_minutes)
        self.interval_seconds = interval_seconds
        self._notifier = notifier
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    @property
    def notifier(self) -> Notifier:
        return self._notifier or get_notifier()

    async def run_once(self, now: Optional[datetime] = None) -> ReapResult:
        """One sweep. `now` is injectable for tests."""
        now = now or utcnow()
        cutoff = now - self.ttl
        result = ReapResult()
        touched_trips: set[int] = set()

        async with self.session_factory() as db:
            expired = await self._select_expired(db, cutoff)

            for booking in expired:
                try:
                    released = await self._cancel(db, booking)
                except Exception as e:
                    await db.rollback()
                    result.failed.append(booking.id)
                    reaper_booking_failures.inc()
                    logger.error("reaper_booking_failed", booking_id=booking.id, error=str(e))
                    continue

                if released is None:
                    # Paid, cancelled or completed since it was selected
                    continue

                result.cancelled.append(booking.id)
                result.seats_released += released
                touched_trips.add(booking.trip_id)
                reaper_bookings_cancelled.inc()
                reaper_seats_released.inc(released)
                logger.info(
                    "reaper_booking_cancelled",
                    booking_id=booking.id,
                    seats_released=released,
                )
                await self._notify(booking)

            try:
                result.expired_holds_released = await seat_inventory.release_expired_holds(db, now)
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error("reaper_hold_sweep_failed", error=str(e))
            else:
                if result.expired_holds_released:
                    reaper_seats_released.inc(result.expired_holds_released)
                    logger.info("reaper_holds_released", seats=result.expired_holds_released)

        if touched_trips:
            await invalidate_seat_map(*touched_trips)
        return result

    async def _select_expired(self, db: AsyncSession, cutoff: datetime) -> list[_ExpiredBooking]:
        rows = await db.execute(
            select(Booking)
            .where(Booking.status == BookingStatus.PENDING, Booking.created_at < cutoff)
            .order_by(Booking.created_at)
            .execution_options(populate_existing=True)
        )
        # Copied out: a rollback on one booking expires every loaded row
        return [
            _ExpiredBooking(
                id=b.id,
                trip_id=b.trip_id,
                seats=list(b.seat_labels or []),
                total=b.total_price,
                created_at=b.created_at,
                email=b.passenger_email,
            )
            for b in rows.scalars().all()
        ]

    async def _cancel(self, db: AsyncSession, booking: _ExpiredBooking) -> Optional[int]:
        cancelled = await booking_records.transition_booking(
            db, booking.id, expected=BookingStatus.PENDING, target=BookingStatus.CANCELLED
        )
        if not cancelled:
            await db.rollback()
            return None

        released = await seat_inventory.release_for_booking(db, booking.id, from_statuses=[SeatStatus.HELD])
        payment = await db.execute(select(Booking.payment_id).where(Booking.id == booking.id))
        await booking_records.set_payment_status(
            db, payment.scalar_one_or_none(), PaymentStatus.PENDING, PaymentStatus.FAILED
        )
        await db.commit()
        return released

    async def _notify(self, booking: _ExpiredBooking) -> None:
        summary = {
            "bookingId": booking.id,
            "seats": booking.seats,
            "totalAmount": booking.total,
            "createdAt": booking.created_at,
            "reason": "not paid in time",
        }
        try:
            await self.notifier.notify_booking_cancelled(booking.email, summary)
        except Exception as e:
            logger.warning("reaper_notification_failed", booking_id=booking.id, error=str(e))

    async def run_forever(self) -> None:
        structlog.contextvars.bind_contextvars(component="reaper")
        logger.info(
            "reaper_started",
            ttl_minutes=self.ttl.total_seconds() / 60,
            interval_seconds=self.interval_seconds,
        )
        while not self._stopping.is_set():
            try:
                result = await self.run_once()
                reaper_ticks.labels(result="ok").inc()
                if result.cancelled or result.failed or result.expired_holds_released:
                    logger.info(
                        "reaper_tick",
                        cancelled=len(result.cancelled),
                        failed=len(result.failed),
                        expired_holds_released=result.expired_holds_released,
                    )
            except Exception as e:
                reaper_ticks.labels(result="error").inc()
                logger.error("reaper_tick_failed", error=str(e))

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("reaper_stopped")

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._stopping = asyncio.Event()
            self._task = asyncio.get_running_loop().create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        """Let the current sweep finish, then end the loop."""
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
