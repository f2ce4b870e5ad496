"""
Seat inventory store and capacity seeder.

CONCURRENCY STRATEGY: Per-seat Compare-and-Swap
===============================================

Problem:
  Two checkouts read seat 7 as "available" and both mark it sold.
  Result: the seat is sold twice.

Solution:
  Every status change is a conditional UPDATE guarded on the prior state:

    UPDATE trip_seats SET status = 'sold', holder_booking_id = :booking
    WHERE id = :seat_id AND status = 'available'

  rowcount == 1 means this caller won the seat; rowcount == 0 means somebody
  else changed it first. Releases use the same discipline (guarded on status
  and holder) so a reaper sweep can never free a seat that was re-sold in
  the meantime.

Seeding:
  Seat rows for labels 1..N are created lazily the first time a trip is
  touched. The insert is INSERT ... ON CONFLICT DO NOTHING against the
  (trip_id, seat_label) unique constraint, so concurrent seeders cannot
  create duplicates and no check-then-insert race exists.
"""

import re
from datetime import datetime
from typing import Iterable, Optional, Sequence, Union

from sqlalchemy import exists, select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.db.base import utcnow
from seatline.models.booking import Booking, BookingStatus
from seatline.models.seat import SeatRecord, SeatStatus
from seatline.core.exceptions import CapacityError, InternalError, NotFoundError, ValidationError
from seatline.core.logging import get_logger

logger = get_logger(__name__)

SeatIdentifier = Union[str, int]

_NON_DIGITS = re.compile(r"\D")


def seat_number(label: SeatIdentifier) -> Optional[int]:
    """Numeric value of a seat label: "07" -> 7, "A12" -> 12, "VIP" -> None."""
    digits = _NON_DIGITS.sub("", str(label))
    return int(digits) if digits else None


def _insert_if_absent(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise InternalError(f"Seat seeding is not supported on {dialect}")
    return insert(SeatRecord).on_conflict_do_nothing(index_elements=["trip_id", "seat_label"])


async def _insert_labels(db: AsyncSession, trip_id: int, labels: Iterable[str]) -> None:
    now = utcnow()
    rows = [
        {
            "trip_id": trip_id,
            "seat_label": label,
            "status": SeatStatus.AVAILABLE,
            "holder_booking_id": None,
            "hold_expires_at": None,
            "created_at": now,
            "updated_at": now,
        }
        for label in labels
    ]
    if rows:
        await db.execute(_insert_if_absent(db), rows)


async def count_seats(db: AsyncSession, trip_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(SeatRecord).where(SeatRecord.trip_id == trip_id)
    )
    return result.scalar_one()


async def ensure_seeded(db: AsyncSession, trip_id: int, seat_count: int) -> int:
    """
    Create seats "1".."seat_count" if the trip has no seats yet.
    Idempotent; commits on its own. Returns the trip's seat record count.
    """
    existing = await count_seats(db, trip_id)
    if existing:
        return existing

    if not seat_count or seat_count < 1:
        raise CapacityError("Bus seat capacity is not configured for this trip")

    await _insert_labels(db, trip_id, (str(n) for n in range(1, seat_count + 1)))
    await db.commit()

    total = await count_seats(db, trip_id)
    logger.info("seats_seeded", trip_id=trip_id, seat_count=seat_count, records=total)
    return total


async def _load_by_label(db: AsyncSession, trip_id: int, label: str) -> Optional[SeatRecord]:
    result = await db.execute(
        select(SeatRecord).where(SeatRecord.trip_id == trip_id, SeatRecord.seat_label == label)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def lookup(
    db: AsyncSession,
    trip_id: int,
    identifiers: Sequence[SeatIdentifier],
    seat_count: int,
) -> list[SeatRecord]:
    """
    Resolve requested seat identifiers to seat records.

    An identifier matches an exact label first, then any label with the same
    numeric value ("1", "01" and 1 are the same seat). An in-range number
    with no record yet (inventory seeded before a capacity change) gets its
    record created on demand. Duplicates collapse to one record, keeping
    request order.
    """
    if not identifiers:
        raise ValidationError("At least one seat must be requested")

    result = await db.execute(
        select(SeatRecord).where(SeatRecord.trip_id == trip_id).order_by(SeatRecord.id)
        .execution_options(populate_existing=True)
    )
    records = list(result.scalars().all())

    by_label = {r.seat_label: r for r in records}
    by_number: dict[int, SeatRecord] = {}
    for r in records:
        n = seat_number(r.seat_label)
        if n is not None and n not in by_number:
            by_number[n] = r

    resolved: list[SeatRecord] = []
    seen: set[int] = set()
    for raw in identifiers:
        label = str(raw).strip()
        record = by_label.get(label)
        if record is None:
            n = seat_number(label)
            if n is None:
                raise NotFoundError(f"Seat {label!r} does not exist on this trip")
            record = by_number.get(n)
            if record is None:
                if n < 1 or n > seat_count:
                    raise CapacityError(f"Seat {label!r} exceeds the bus capacity of {seat_count}")
                record = await _create_on_demand(db, trip_id, n)
                by_number[n] = record
                by_label[record.seat_label] = record
        if record.id not in seen:
            seen.add(record.id)
            resolved.append(record)

    return resolved


async def _create_on_demand(db: AsyncSession, trip_id: int, number: int) -> SeatRecord:
    label = str(number)
    await _insert_labels(db, trip_id, [label])
    await db.commit()
    record = await _load_by_label(db, trip_id, label)
    if record is None:
        raise InternalError(f"Seat {label} could not be created")
    logger.info("seat_created_on_demand", trip_id=trip_id, seat_label=label)
    return record


async def transition(
    db: AsyncSession,
    seat_id: int,
    expected: str,
    target: str,
    holder_booking_id: Optional[str],
    hold_expires_at: Optional[datetime] = None,
    expected_holder: Optional[str] = None,
) -> bool:
    """
    Compare-and-swap one seat from `expected` to `target`.
    Returns True only if this call changed the row.
    """
    stmt = update(SeatRecord).where(SeatRecord.id == seat_id, SeatRecord.status == expected)
    if expected_holder is not None:
        stmt = stmt.where(SeatRecord.holder_booking_id == expected_holder)

    releasing = target == SeatStatus.AVAILABLE
    result = await db.execute(
        stmt.values(
            status=target,
            holder_booking_id=None if releasing else holder_booking_id,
            hold_expires_at=hold_expires_at if target == SeatStatus.HELD else None,
            updated_at=utcnow(),
        ).execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def release_for_booking(
    db: AsyncSession,
    booking_id: str,
    from_statuses: Sequence[str] = (SeatStatus.HELD, SeatStatus.SOLD),
) -> int:
    """Return every seat held by `booking_id` in one of `from_statuses` to available."""
    result = await db.execute(
        update(SeatRecord)
        .where(
            SeatRecord.holder_booking_id == booking_id,
            SeatRecord.status.in_(list(from_statuses)),
        )
        .values(
            status=SeatStatus.AVAILABLE,
            holder_booking_id=None,
            hold_expires_at=None,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def release_expired_holds(db: AsyncSession, now: datetime) -> int:
    """Release lapsed held seats no pending booking still owns. Does not commit.

    Seats of a pending booking are left to that booking's own cancellation,
    so a booking whose cancellation failed keeps its seats until it is
    retried.
    """
    result = await db.execute(
        update(SeatRecord)
        .where(
            SeatRecord.status == SeatStatus.HELD,
            SeatRecord.hold_expires_at.is_not(None),
            SeatRecord.hold_expires_at < now,
            ~exists().where(
                Booking.id == SeatRecord.holder_booking_id,
                Booking.status == BookingStatus.PENDING,
            ),
        )
        .values(
            status=SeatStatus.AVAILABLE,
            holder_booking_id=None,
            hold_expires_at=None,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def seats_for_booking(db: AsyncSession, booking_id: str) -> list[SeatRecord]:
    result = await db.execute(
        select(SeatRecord).where(SeatRecord.holder_booking_id == booking_id).order_by(SeatRecord.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def seat_map(db: AsyncSession, trip_id: int) -> list[SeatRecord]:
    """All seats of a trip, ordered by seat number."""
    result = await db.execute(
        select(SeatRecord)
        .where(SeatRecord.trip_id == trip_id)
        .execution_options(populate_existing=True)
    )
    records = list(result.scalars().all())
    records.sort(key=lambda r: (seat_number(r.seat_label) is None, seat_number(r.seat_label) or 0, r.seat_label))
    return records
