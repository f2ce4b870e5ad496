"""
Tests for booking endpoints: checkout, payment confirmation, cancellation
and lookup.
"""

import pytest
from httpx import AsyncClient

from conftest import TEST_USER_ID
from seatline.services.notification_service import get_dispatcher


def checkout_body(trip_id, seats, passenger, **extra):
    body = {"tripId": trip_id, "seatNumbers": seats, "passenger": passenger}
    body.update(extra)
    return body


async def seat_statuses(client: AsyncClient, trip_id: int) -> dict:
    response = await client.get(f"/api/v1/trips/{trip_id}/seats")
    assert response.status_code == 200
    return {s["label"]: s["status"] for s in response.json()["seats"]}


@pytest.mark.asyncio
async def test_checkout_end_to_end(client: AsyncClient, test_trip, passenger):
    """Two seats sold at base price; the next buyer of seat 1 gets 409."""
    response = await client.post(
        "/api/v1/bookings/checkout",
        json=checkout_body(test_trip.id, ["1", "2"], passenger),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["seats"] == ["1", "2"]
    assert data["pricePerSeat"] == 100_000
    assert data["totalAmount"] == 200_000
    assert data["status"] == "confirmed"
    assert data["paymentMethod"] == "banking"
    assert data["route"] == {"from": "Ha Noi", "to": "Nam Dinh", "durationMin": 120}
    assert data["bus"] == {"busType": "Limousine", "seatCount": 4}
    assert data["passenger"]["phone"] == passenger["phone"]
    assert data["bookingId"] and data["paymentId"]

    assert await seat_statuses(client, test_trip.id) == {
        "1": "sold", "2": "sold", "3": "available", "4": "available",
    }

    conflict = await client.post(
        "/api/v1/bookings/checkout",
        json=checkout_body(test_trip.id, ["1"], passenger),
    )
    assert conflict.status_code == 409
    assert "error" in conflict.json()

    statuses = await seat_statuses(client, test_trip.id)
    assert statuses["3"] == "available"
    assert statuses["4"] == "available"


@pytest.mark.asyncio
async def test_checkout_is_all_or_nothing(client: AsyncClient, test_trip, passenger):
    """One taken seat fails the whole request and leaves the others free."""
    first = await client.post(
        "/api/v1/bookings/checkout", json=checkout_body(test_trip.id, [2], passenger)
    )
    assert first.status_code == 201

    response = await client.post(
        "/api/v1/bookings/checkout", json=checkout_body(test_trip.id, [1, 2, 3], passenger)
    )
    assert response.status_code == 409

    assert await seat_statuses(client, test_trip.id) == {
        "1": "available", "2": "sold", "3": "available", "4": "available",
    }


@pytest.mark.asyncio
async def test_numeric_and_padded_labels_are_one_seat(client: AsyncClient, test_trip, passenger):
    response = await client.post(
        "/api/v1/bookings/checkout", json=checkout_body(test_trip.id, ["01", 1, "1"], passenger)
    )
    assert response.status_code == 201
    data = response.json()
    assert data["seats"] == ["1"]
    assert data["totalAmount"] == 100_000


@pytest.mark.asyncio
async def test_checkout_seat_beyond_capacity(client: AsyncClient, test_trip, passenger):
    response = await client.post(
        "/api/v1/bookings/checkout", json=checkout_body(test_trip.id, [5], passenger)
    )
    assert response.status_code == 422
    assert "capacity" in response.json()["error"]


@pytest.mark.asyncio
async def test_checkout_unknown_seat_label(client: AsyncClient, test_trip, passenger):
    response = await client.post(
        "/api/v1/bookings/checkout", json=checkout_body(test_trip.id, ["VIP"], passenger)
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_checkout_unknown_trip(client: AsyncClient, db_session, passenger):
    response = await client.post(
        "/api/v1/bookings/checkout", json=checkout_body(999, [1], passenger)
    )
    assert response.status_code == 404
    assert response.json() == {"error": "Trip 999 not found"}


@pytest.mark.asyncio
async def test_checkout_bus_without_capacity(client: AsyncClient, unconfigured_trip, passenger):
    response = await client.post(
        "/api/v1/bookings/checkout", json=checkout_body(unconfigured_trip.id, [1], passenger)
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_checkout_empty_seat_list(client: AsyncClient, test_trip, passenger):
    response = await client.post(
        "/api/v1/bookings/checkout", json=checkout_body(test_trip.id, [], passenger)
    )
    assert response.status_code == 400
    assert "error" in response.json()


@pytest.mark.asyncio
async def test_checkout_missing_passenger(client: AsyncClient, test_trip):
    response = await client.post(
        "/api/v1/bookings/checkout", json={"tripId": test_trip.id, "seatNumbers": [1]}
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_checkout_segment_pricing(client: AsyncClient, test_trip, stop_ids, passenger):
    """Half of an 80 km route costs half the base fare per seat."""
    response = await client.post(
        "/api/v1/bookings/checkout",
        json=checkout_body(
            test_trip.id, [3, 4], passenger,
            stops={"pickupId": stop_ids[0], "dropoffId": stop_ids[1]},
        ),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["pricePerSeat"] == 50_000
    assert data["totalAmount"] == 100_000


@pytest.mark.asyncio
async def test_checkout_reversed_stops(client: AsyncClient, test_trip, stop_ids, passenger):
    response = await client.post(
        "/api/v1/bookings/checkout",
        json=checkout_body(
            test_trip.id, [1], passenger,
            stops={"pickupId": stop_ids[2], "dropoffId": stop_ids[0]},
        ),
    )
    assert response.status_code == 400
    # Pricing failure claims nothing
    assert (await seat_statuses(client, test_trip.id))["1"] == "available"


@pytest.mark.asyncio
async def test_checkout_links_caller(client: AsyncClient, auth_headers, test_trip, passenger):
    response = await client.post(
        "/api/v1/bookings/checkout",
        json=checkout_body(test_trip.id, [1], passenger),
        headers=auth_headers,
    )
    assert response.status_code == 201

    detail = await client.get(f"/api/v1/bookings/{response.json()['bookingId']}")
    assert detail.status_code == 200
    assert detail.json()["userId"] == TEST_USER_ID


@pytest.mark.asyncio
async def test_anonymous_checkout(client: AsyncClient, test_trip, passenger):
    response = await client.post(
        "/api/v1/bookings/checkout", json=checkout_body(test_trip.id, [1], passenger)
    )
    assert response.status_code == 201

    detail = await client.get(f"/api/v1/bookings/{response.json()['bookingId']}")
    assert detail.json()["userId"] is None


@pytest.mark.asyncio
async def test_pay_later_checkout_holds_seats(client: AsyncClient, test_trip, passenger):
    response = await client.post(
        "/api/v1/bookings/checkout",
        json=checkout_body(test_trip.id, [1, 2], passenger, paymentMethod="cod"),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["holdExpiresAt"] is not None

    statuses = await seat_statuses(client, test_trip.id)
    assert statuses["1"] == "held"
    assert statuses["2"] == "held"


@pytest.mark.asyncio
async def test_confirm_payment(client: AsyncClient, test_trip, passenger):
    created = await client.post(
        "/api/v1/bookings/checkout",
        json=checkout_body(test_trip.id, [1], passenger, paymentMethod="cod"),
    )
    booking_id = created.json()["bookingId"]

    response = await client.post(f"/api/v1/bookings/{booking_id}/confirm-payment")
    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"
    assert (await seat_statuses(client, test_trip.id))["1"] == "sold"

    again = await client.post(f"/api/v1/bookings/{booking_id}/confirm-payment")
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_confirm_paid_booking_rejected(client: AsyncClient, test_trip, passenger):
    created = await client.post(
        "/api/v1/bookings/checkout", json=checkout_body(test_trip.id, [1], passenger)
    )
    response = await client.post(f"/api/v1/bookings/{created.json()['bookingId']}/confirm-payment")
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_cancel_booking(client: AsyncClient, auth_headers, test_trip, passenger, notifier):
    created = await client.post(
        "/api/v1/bookings/checkout",
        json=checkout_body(test_trip.id, [1, 2], passenger),
        headers=auth_headers,
    )
    booking_id = created.json()["bookingId"]

    response = await client.delete(f"/api/v1/bookings/{booking_id}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    statuses = await seat_statuses(client, test_trip.id)
    assert statuses["1"] == "available"
    assert statuses["2"] == "available"

    await get_dispatcher().drain()
    assert [m["subject"] for m in notifier.outbox] == [
        "Your bus ticket booking",
        "Your booking has been cancelled",
    ]

    # Seats can be sold again
    resold = await client.post(
        "/api/v1/bookings/checkout", json=checkout_body(test_trip.id, [1], passenger)
    )
    assert resold.status_code == 201

    again = await client.delete(f"/api/v1/bookings/{booking_id}", headers=auth_headers)
    assert again.status_code == 400


@pytest.mark.asyncio
async def test_cancel_requires_auth(client: AsyncClient, test_trip, passenger):
    created = await client.post(
        "/api/v1/bookings/checkout", json=checkout_body(test_trip.id, [1], passenger)
    )
    response = await client.delete(f"/api/v1/bookings/{created.json()['bookingId']}")
    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated"}


@pytest.mark.asyncio
async def test_cancel_someone_elses_booking(client: AsyncClient, auth_headers, test_trip, passenger):
    """Anonymous bookings are not owned by the caller and look absent."""
    created = await client.post(
        "/api/v1/bookings/checkout", json=checkout_body(test_trip.id, [1], passenger)
    )
    response = await client.delete(
        f"/api/v1/bookings/{created.json()['bookingId']}", headers=auth_headers
    )
    assert response.status_code == 404
    assert (await seat_statuses(client, test_trip.id))["1"] == "sold"


@pytest.mark.asyncio
async def test_list_bookings(client: AsyncClient, auth_headers, test_trip, passenger):
    await client.post(
        "/api/v1/bookings/checkout",
        json=checkout_body(test_trip.id, [1], passenger),
        headers=auth_headers,
    )
    await client.post(
        "/api/v1/bookings/checkout",
        json=checkout_body(test_trip.id, [2], {"name": "B", "phone": "0911111111"}),
    )

    mine = await client.get("/api/v1/bookings/", headers=auth_headers)
    assert mine.status_code == 200
    assert [b["seatLabels"] for b in mine.json()] == [["1"]]

    by_phone = await client.get("/api/v1/bookings/", params={"phone": "0911111111"})
    assert [b["seatLabels"] for b in by_phone.json()] == [["2"]]

    by_user = await client.get("/api/v1/bookings/", params={"userId": TEST_USER_ID})
    assert len(by_user.json()) == 1


@pytest.mark.asyncio
async def test_get_booking_not_found(client: AsyncClient, db_session):
    response = await client.get("/api/v1/bookings/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"error": "Booking not found"}


@pytest.mark.asyncio
async def test_seat_map_seeds_trip(client: AsyncClient, test_trip):
    response = await client.get(f"/api/v1/trips/{test_trip.id}/seats")
    assert response.status_code == 200
    data = response.json()
    assert data["tripId"] == test_trip.id
    assert data["seatCount"] == 4
    assert data["available"] == 4
    assert [s["label"] for s in data["seats"]] == ["1", "2", "3", "4"]


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["cache"] == {"status": "disabled"}
