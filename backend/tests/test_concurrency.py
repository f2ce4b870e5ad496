"""
Concurrency tests: racing checkouts on independent sessions.

Every caller gets its own AsyncSession (its own connection), so the only
thing standing between them and a double sale is the per-seat
conditional update.
"""

import asyncio
from collections import Counter

import pytest

from seatline.core.exceptions import ConflictError
from seatline.models.booking import BookingStatus
from seatline.models.seat import SeatStatus
from seatline.services import booking_service, seat_inventory


async def _attempt(session_factory, committer, trip_id, seats, n):
    async with session_factory() as db:
        try:
            result = await booking_service.checkout(
                db,
                trip_id=trip_id,
                seat_numbers=seats,
                passenger={"name": f"Racer {n}", "phone": f"09000000{n:02d}"},
                payment_method="banking",
                committer=committer,
            )
        except ConflictError:
            return None
        return result


async def _seat_rows(session_factory, trip_id):
    async with session_factory() as db:
        return {r.seat_label: (r.status, r.holder_booking_id) for r in await seat_inventory.seat_map(db, trip_id)}


@pytest.mark.asyncio
async def test_no_double_sell(session_factory, committer, test_trip):
    """N checkouts for the same seat: exactly one wins."""
    attempts = 8
    results = await asyncio.gather(
        *[_attempt(session_factory, committer, test_trip.id, ["1"], n) for n in range(attempts)]
    )

    winners = [r for r in results if r is not None]
    assert len(winners) == 1
    assert results.count(None) == attempts - 1

    rows = await _seat_rows(session_factory, test_trip.id)
    assert rows["1"] == (SeatStatus.SOLD, winners[0]["bookingId"])
    assert rows["2"][0] == SeatStatus.AVAILABLE


@pytest.mark.asyncio
async def test_overlapping_multi_seat_checkouts(session_factory, committer, test_trip):
    """Overlapping seat sets: every seat ends up with at most one live booking."""
    requests = [[1, 2], [2, 3], [3, 4], [4, 1], [1, 3], [2, 4]]
    results = await asyncio.gather(
        *[_attempt(session_factory, committer, test_trip.id, seats, n) for n, seats in enumerate(requests)]
    )
    winners = [r for r in results if r is not None]

    sold = Counter(label for r in winners for label in r["seats"])
    assert all(count == 1 for count in sold.values())

    rows = await _seat_rows(session_factory, test_trip.id)
    owners = {r["bookingId"]: set(r["seats"]) for r in winners}
    for label, (status, holder) in rows.items():
        if label in sold:
            assert status == SeatStatus.SOLD
            assert label in owners[holder]
        else:
            # Losers left nothing behind
            assert (status, holder) == (SeatStatus.AVAILABLE, None)


@pytest.mark.asyncio
async def test_booking_matches_seat_records(session_factory, committer, test_trip):
    """A live booking's seat labels are exactly the seats it holds."""
    results = await asyncio.gather(
        *[_attempt(session_factory, committer, test_trip.id, [1, 2], n) for n in range(4)]
    )
    winner = next(r for r in results if r is not None)

    async with session_factory() as db:
        bookings = await booking_service.list_bookings(db)
        assert [b.id for b in bookings] == [winner["bookingId"]]
        assert bookings[0].status == BookingStatus.CONFIRMED

        held = await seat_inventory.seats_for_booking(db, winner["bookingId"])
        assert sorted(s.seat_label for s in held) == sorted(bookings[0].seat_labels)


@pytest.mark.asyncio
async def test_concurrent_seeding_creates_each_seat_once(session_factory, test_trip):
    async def seed():
        async with session_factory() as db:
            return await seat_inventory.ensure_seeded(db, test_trip.id, 4)

    counts = await asyncio.gather(*[seed() for _ in range(5)])
    assert all(c == 4 for c in counts)

    rows = await _seat_rows(session_factory, test_trip.id)
    assert sorted(rows) == ["1", "2", "3", "4"]
