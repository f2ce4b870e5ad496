"""
Locust Load Test Suite

Trips are catalog data; point the scenarios at seeded trips with
SEATLINE_TRIP_IDS (comma separated, default "1").

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test double selling
  locust -f locustfile.py --tags throughput   # Test seat map cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
from locust import HttpUser, task, between, tag, events

TRIP_IDS = [int(t) for t in os.environ.get("SEATLINE_TRIP_IDS", "1").split(",") if t.strip()]
CONCURRENCY_TRIP_ID = TRIP_IDS[0]
SOLD_SEATS: dict[str, int] = {}


def random_phone():
    return "09" + "".join(random.choices("0123456789", k=8))


def passenger():
    return {"name": f"Load {random.randint(1000, 9999)}", "phone": random_phone()}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"SETUP: racing for seats of trip {CONCURRENCY_TRIP_ID}")
    print("=" * 60)


@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    doubles = {seat: n for seat, n in SOLD_SEATS.items() if n > 1}
    print(f"\nSeats sold: {len(SOLD_SEATS)}, sold more than once: {len(doubles)}")
    if doubles:
        print(f"DOUBLE SOLD: {doubles}")


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - many passengers, one bus

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT seat_label, COUNT(*) FROM trip_seats WHERE trip_id = X GROUP BY seat_label;
    Every count should be 1, and no seat label appears in two live bookings.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        resp = self.client.get(f"/api/v1/trips/{CONCURRENCY_TRIP_ID}/seats")
        self.seat_count = resp.json().get("seatCount", 40) if resp.status_code == 200 else 40

    @tag("concurrency")
    @task
    def race_for_seats(self):
        """Everyone grabs one or two random seats of the same trip."""
        seats = random.sample(range(1, self.seat_count + 1), k=random.randint(1, 2))
        with self.client.post(
            "/api/v1/bookings/checkout",
            json={
                "tripId": CONCURRENCY_TRIP_ID,
                "seatNumbers": seats,
                "passenger": passenger(),
                "paymentMethod": "banking",
            },
            name="/api/v1/bookings/checkout [race]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                for label in resp.json()["seats"]:
                    SOLD_SEATS[label] = SOLD_SEATS.get(label, 0) + 1
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: seat taken
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Seat map cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def seat_map(self):
        trip_id = random.choice(TRIP_IDS)
        self.client.get(f"/api/v1/trips/{trip_id}/seats", name="/api/v1/trips/{id}/seats")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def _expect(self, payload, allowed, name):
        with self.client.post(
            "/api/v1/bookings/checkout", json=payload, name=name, catch_response=True
        ) as resp:
            if resp.status_code in allowed:
                resp.success()
            else:
                resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_trip(self):
        self._expect(
            {"tripId": 999999, "seatNumbers": [1], "passenger": passenger()},
            [404],
            "checkout [unknown trip]",
        )

    @tag("edge")
    @task
    def empty_seat_list(self):
        self._expect(
            {"tripId": CONCURRENCY_TRIP_ID, "seatNumbers": [], "passenger": passenger()},
            [400],
            "checkout [no seats]",
        )

    @tag("edge")
    @task
    def seat_beyond_capacity(self):
        self._expect(
            {"tripId": CONCURRENCY_TRIP_ID, "seatNumbers": [9999], "passenger": passenger()},
            [422],
            "checkout [over capacity]",
        )

    @tag("edge")
    @task
    def missing_passenger(self):
        self._expect(
            {"tripId": CONCURRENCY_TRIP_ID, "seatNumbers": [1]},
            [400],
            "checkout [no passenger]",
        )

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/bookings/checkout",
            data="not json at all",
            headers={"Content-Type": "application/json"},
            name="checkout [garbage]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 400:
                resp.success()
            else:
                resp.failure(f"Expected 400, got {resp.status_code}")


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly looking at seat maps
      - Some checkouts, half of them pay-later
      - Occasional confirmations of pay-later bookings
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.pending: list[str] = []

    @task(50)
    def browse_seats(self):
        self.client.get(f"/api/v1/trips/{random.choice(TRIP_IDS)}/seats", name="/api/v1/trips/{id}/seats")

    @task(10)
    def checkout(self):
        trip_id = random.choice(TRIP_IDS)
        resp = self.client.get(f"/api/v1/trips/{trip_id}/seats", name="/api/v1/trips/{id}/seats")
        if resp.status_code != 200:
            return
        free = [s["label"] for s in resp.json()["seats"] if s["status"] == "available"]
        if not free:
            return
        method = random.choice(["banking", "cod"])
        resp = self.client.post(
            "/api/v1/bookings/checkout",
            json={
                "tripId": trip_id,
                "seatNumbers": random.sample(free, k=min(len(free), random.randint(1, 3))),
                "passenger": passenger(),
                "paymentMethod": method,
            },
        )
        if resp.status_code == 201 and method == "cod":
            self.pending.append(resp.json()["bookingId"])

    @task(3)
    def confirm_payment(self):
        if self.pending:
            booking_id = self.pending.pop()
            self.client.post(
                f"/api/v1/bookings/{booking_id}/confirm-payment",
                name="/api/v1/bookings/{id}/confirm-payment",
            )
