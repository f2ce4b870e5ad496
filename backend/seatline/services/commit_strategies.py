"""
Commit strategies for checkout.

TransactionalCommit
  For stores with multi-record transactions (PostgreSQL, SQLite). Seat CAS
  updates, booking and payment are written in one transaction. A lost CAS or
  a storage error rolls the whole transaction back, so no other caller ever
  sees a partial checkout.

CompensatingCommit
  For stores without multi-record transactions. Every write is committed on
  its own, exactly like a document store updating one document at a time.
  The per-seat CAS still guarantees a single winner per seat; when a later
  step fails, compensating conditional updates undo the seats this request
  claimed (guarded on holder, so nobody else's seats are touched) before the
  error is raised.

  Tradeoff: between a claim and its compensation another caller may briefly
  see the seat as sold. It can never buy it, and the seat returns to
  available before the failing request answers.

Seats are always claimed in ascending id order so two overlapping
multi-seat checkouts cannot deadlock on row locks.
"""

import asyncio

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.models.booking import BookingStatus
from seatline.models.payment import PaymentStatus
from seatline.models.seat import SeatStatus
from seatline.services import booking_records, seat_inventory
from seatline.services.interfaces.commit import CheckoutPlan, CommitStrategy, ConfirmPlan, SeatClaim
from seatline.core.exceptions import BookingError, ConflictError, InternalError
from seatline.core.metrics import record_compensation, seat_cas_conflicts
from seatline.core.logging import get_logger

logger = get_logger(__name__)


def _lock_order(seats: list[SeatClaim]) -> list[SeatClaim]:
    return sorted(seats, key=lambda s: s.seat_id)


def _seat_conflict(plan_booking_id: str, seat: SeatClaim) -> ConflictError:
    seat_cas_conflicts.inc()
    logger.info("seat_conflict", booking_id=plan_booking_id, seat_id=seat.seat_id, seat_label=seat.label)
    return ConflictError(f"Seat {seat.label} has already been held or sold")


class TransactionalCommit(CommitStrategy):
    """All writes of one checkout inside a single database transaction."""

    name = "transactional"

    async def commit_checkout(self, db: AsyncSession, plan: CheckoutPlan) -> None:
        try:
            for seat in _lock_order(plan.seats):
                claimed = await seat_inventory.transition(
                    db,
                    seat.seat_id,
                    expected=SeatStatus.AVAILABLE,
                    target=plan.seat_status,
                    holder_booking_id=plan.booking_id,
                    hold_expires_at=plan.hold_expires_at,
                )
                if not claimed:
                    raise _seat_conflict(plan.booking_id, seat)

            await booking_records.write_booking(db, plan)
            await db.commit()
        except BookingError:
            await db.rollback()
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("checkout_commit_failed", booking_id=plan.booking_id, error=str(e))
            raise InternalError("Checkout could not be saved") from e
        except BaseException:
            await asyncio.shield(db.rollback())
            raise

    async def commit_confirmation(self, db: AsyncSession, plan: ConfirmPlan) -> None:
        try:
            confirmed = await booking_records.transition_booking(
                db,
                plan.booking_id,
                expected=BookingStatus.PENDING,
                target=BookingStatus.CONFIRMED,
                not_before=plan.not_before,
            )
            if not confirmed:
                raise ConflictError("Booking is no longer awaiting payment")

            for seat in _lock_order(plan.seats):
                sold = await seat_inventory.transition(
                    db,
                    seat.seat_id,
                    expected=SeatStatus.HELD,
                    target=SeatStatus.SOLD,
                    holder_booking_id=plan.booking_id,
                    expected_holder=plan.booking_id,
                )
                if not sold:
                    raise _seat_conflict(plan.booking_id, seat)

            await booking_records.set_payment_status(
                db, plan.payment_id, PaymentStatus.PENDING, PaymentStatus.SUCCESS, plan.settled_at
            )
            await db.commit()
        except BookingError:
            await db.rollback()
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("confirmation_commit_failed", booking_id=plan.booking_id, error=str(e))
            raise InternalError("Payment confirmation could not be saved") from e
        except BaseException:
            await asyncio.shield(db.rollback())
            raise


class CompensatingCommit(CommitStrategy):
    """One commit per write; failures undone by compensating updates."""

    name = "compensating"

    async def commit_checkout(self, db: AsyncSession, plan: CheckoutPlan) -> None:
        try:
            for seat in _lock_order(plan.seats):
                ok = await seat_inventory.transition(
                    db,
                    seat.seat_id,
                    expected=SeatStatus.AVAILABLE,
                    target=plan.seat_status,
                    holder_booking_id=plan.booking_id,
                    hold_expires_at=plan.hold_expires_at,
                )
                await db.commit()
                if not ok:
                    raise _seat_conflict(plan.booking_id, seat)

            await booking_records.insert_booking(db, plan)
            await db.commit()
            await booking_records.insert_payment(db, plan)
            await booking_records.link_payment(db, plan.booking_id, plan.payment_id)
            await db.commit()
        except ConflictError:
            await self._undo_checkout(db, plan, reason="conflict")
            raise
        except SQLAlchemyError as e:
            logger.error("checkout_commit_failed", booking_id=plan.booking_id, error=str(e))
            await self._undo_checkout(db, plan, reason="error")
            raise InternalError("Checkout could not be saved") from e
        except BaseException as e:
            # Cancelled or crashed after some writes were already committed
            logger.error("checkout_interrupted", booking_id=plan.booking_id, error_type=type(e).__name__)
            await asyncio.shield(self._undo_checkout(db, plan, reason="interrupted"))
            raise

    async def _undo_checkout(self, db: AsyncSession, plan: CheckoutPlan, reason: str) -> None:
        # Every seat naming this booking as holder was claimed by this request,
        # including one whose commit landed just before an interruption
        try:
            await db.rollback()
            await booking_records.delete_booking(db, plan.booking_id)
            released = await seat_inventory.release_for_booking(
                db, plan.booking_id, from_statuses=[plan.seat_status]
            )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            # Held seats still lapse through the reaper's expired-hold sweep
            logger.error(
                "compensation_failed",
                booking_id=plan.booking_id,
                seats=plan.seat_labels,
                error=str(e),
            )
            return

        record_compensation(reason, released)
        logger.info(
            "checkout_compensated",
            booking_id=plan.booking_id,
            reason=reason,
            seats_released=released,
        )

    async def commit_confirmation(self, db: AsyncSession, plan: ConfirmPlan) -> None:
        confirmed = False
        try:
            confirmed = await booking_records.transition_booking(
                db,
                plan.booking_id,
                expected=BookingStatus.PENDING,
                target=BookingStatus.CONFIRMED,
                not_before=plan.not_before,
            )
            await db.commit()
            if not confirmed:
                raise ConflictError("Booking is no longer awaiting payment")

            for seat in _lock_order(plan.seats):
                ok = await seat_inventory.transition(
                    db,
                    seat.seat_id,
                    expected=SeatStatus.HELD,
                    target=SeatStatus.SOLD,
                    holder_booking_id=plan.booking_id,
                    expected_holder=plan.booking_id,
                )
                await db.commit()
                if not ok:
                    raise _seat_conflict(plan.booking_id, seat)

            await booking_records.set_payment_status(
                db, plan.payment_id, PaymentStatus.PENDING, PaymentStatus.SUCCESS, plan.settled_at
            )
            await db.commit()
        except ConflictError:
            await self._undo_confirmation(db, plan, confirmed, reason="conflict")
            raise
        except SQLAlchemyError as e:
            logger.error("confirmation_commit_failed", booking_id=plan.booking_id, error=str(e))
            await self._undo_confirmation(db, plan, confirmed, reason="error")
            raise InternalError("Payment confirmation could not be saved") from e
        except BaseException as e:
            logger.error("confirmation_interrupted", booking_id=plan.booking_id, error_type=type(e).__name__)
            await asyncio.shield(self._undo_confirmation(db, plan, confirmed, reason="interrupted"))
            raise

    async def _undo_confirmation(
        self, db: AsyncSession, plan: ConfirmPlan, confirmed: bool, reason: str
    ) -> None:
        """Put the booking back to pending and its seats back on hold."""
        if not confirmed:
            # Never moved the booking, so nothing of ours to revert
            await db.rollback()
            return

        restored = 0
        try:
            await db.rollback()
            for seat in plan.seats:
                restored += await seat_inventory.transition(
                    db,
                    seat.seat_id,
                    expected=SeatStatus.SOLD,
                    target=SeatStatus.HELD,
                    holder_booking_id=plan.booking_id,
                    hold_expires_at=seat.hold_expires_at,
                    expected_holder=plan.booking_id,
                )
            await booking_records.transition_booking(
                db, plan.booking_id, expected=BookingStatus.CONFIRMED, target=BookingStatus.PENDING
            )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("compensation_failed", booking_id=plan.booking_id, error=str(e))
            return

        record_compensation(reason, restored)
        logger.info("confirmation_compensated", booking_id=plan.booking_id, seats_restored=restored)
