"""
Segment pricing.

A passenger riding only part of a route pays the base fare scaled by the
share of the route distance they travel:

    price = round(base * (dropoff_km - pickup_km) / max(route_km, 1))

rounded half-up to a whole currency unit, never below 1 for a positive
segment. Without a stop pair the full base price applies.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence

from seatline.core.exceptions import NotFoundError, ValidationError


@dataclass(frozen=True)
class StopPoint:
    id: int
    order: int
    km_from_start: Optional[float]


def route_distance(stops: Sequence[StopPoint], total_distance_km: Optional[float]) -> float:
    """Route length, falling back to the farthest stop when the route has none recorded."""
    if total_distance_km:
        return float(total_distance_km)
    distances = [s.km_from_start for s in stops if s.km_from_start is not None]
    return float(max(distances)) if distances else 0.0


def price_per_seat(
    base_price: int,
    stops: Sequence[StopPoint],
    pickup_id: Optional[int] = None,
    dropoff_id: Optional[int] = None,
    total_distance_km: Optional[float] = None,
) -> int:
    if pickup_id is None and dropoff_id is None:
        return int(base_price)
    if pickup_id is None or dropoff_id is None:
        raise ValidationError("Both pickup and dropoff stops are required for segment pricing")

    by_id = {s.id: s for s in stops}
    pickup = by_id.get(pickup_id)
    dropoff = by_id.get(dropoff_id)
    if pickup is None:
        raise NotFoundError(f"Pickup stop {pickup_id} is not on this route")
    if dropoff is None:
        raise NotFoundError(f"Dropoff stop {dropoff_id} is not on this route")

    if dropoff.order <= pickup.order:
        raise ValidationError("Dropoff stop must come after the pickup stop")
    if pickup.km_from_start is None or dropoff.km_from_start is None:
        raise ValidationError("Stop distance is not configured for this route")

    segment = Decimal(str(dropoff.km_from_start)) - Decimal(str(pickup.km_from_start))
    if segment <= 0:
        raise ValidationError("Dropoff stop must be farther along the route than the pickup stop")

    total = max(Decimal(str(route_distance(stops, total_distance_km))), Decimal(1))
    price = (Decimal(base_price) * segment / total).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return max(int(price), 1)
