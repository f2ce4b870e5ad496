"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Checkout metrics
checkout_attempts = Counter(
    'checkout_attempts_total',
    'Total checkout attempts',
    ['status', 'strategy']  # success, conflict, rejected, error
)

checkout_latency = Histogram(
    'checkout_latency_seconds',
    'Checkout request latency',
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

seat_cas_conflicts = Counter(
    'seat_cas_conflicts_total',
    'Seat compare-and-swap updates that lost a race'
)

compensations = Counter(
    'checkout_compensations_total',
    'Seat updates rolled back by compensating release',
    ['reason']  # conflict, error, interrupted
)

# Reaper metrics
reaper_ticks = Counter(
    'reaper_ticks_total',
    'Reaper sweeps',
    ['result']  # ok, error
)

reaper_bookings_cancelled = Counter(
    'reaper_bookings_cancelled_total',
    'Pending bookings cancelled after TTL'
)

reaper_booking_failures = Counter(
    'reaper_booking_failures_total',
    'Pending bookings the reaper failed to cancel (retried next tick)'
)

reaper_seats_released = Counter(
    'reaper_seats_released_total',
    'Seats returned to available by the reaper'
)

# Notification metrics
notifications = Counter(
    'notifications_total',
    'Post-commit notifications',
    ['kind', 'result']  # confirmed/cancelled, sent/failed/skipped
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# Convenience functions for instrumentation
def record_checkout_attempt(status: str, strategy: str):
    """Record checkout attempt. Status: success, conflict, rejected, error"""
    checkout_attempts.labels(status=status, strategy=strategy).inc()


def record_compensation(reason: str, seats: int):
    if seats:
        compensations.labels(reason=reason).inc(seats)


def record_notification(kind: str, result: str):
    notifications.labels(kind=kind, result=result).inc()
