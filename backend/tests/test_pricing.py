"""
Tests for segment pricing.
"""

import pytest

from seatline.core.exceptions import NotFoundError, ValidationError
from seatline.services.pricing import StopPoint, price_per_seat, route_distance

STOPS = (
    StopPoint(id=10, order=1, km_from_start=0),
    StopPoint(id=11, order=2, km_from_start=40),
    StopPoint(id=12, order=3, km_from_start=80),
)


def test_full_route_without_stops():
    assert price_per_seat(100_000, STOPS) == 100_000


def test_half_route_segment():
    assert price_per_seat(100_000, STOPS, 10, 11, 80) == 50_000
    assert price_per_seat(100_000, STOPS, 11, 12, 80) == 50_000
    assert price_per_seat(100_000, STOPS, 10, 12, 80) == 100_000


def test_rounds_half_up():
    stops = (StopPoint(1, 1, 0), StopPoint(2, 2, 1))
    # 5 * 1 / 2 = 2.5
    assert price_per_seat(5, stops, 1, 2, 2) == 3


def test_minimum_price_is_one():
    stops = (StopPoint(1, 1, 0), StopPoint(2, 2, 0.1))
    assert price_per_seat(1_000, stops, 1, 2, 1_000) == 1


def test_route_distance_falls_back_to_farthest_stop():
    assert route_distance(STOPS, None) == 80
    assert route_distance(STOPS, 120) == 120
    assert route_distance((), None) == 0
    # max(route_km, 1) keeps a zero-length route from dividing by zero
    stops = (StopPoint(1, 1, 0), StopPoint(2, 2, 0.5))
    assert price_per_seat(100, stops, 1, 2, 0) == 50


@pytest.mark.parametrize("pickup, dropoff", [(11, 10), (11, 11), (12, 10)])
def test_dropoff_must_follow_pickup(pickup, dropoff):
    with pytest.raises(ValidationError):
        price_per_seat(100_000, STOPS, pickup, dropoff, 80)


def test_zero_length_segment_rejected():
    stops = (StopPoint(1, 1, 30), StopPoint(2, 2, 30))
    with pytest.raises(ValidationError):
        price_per_seat(100_000, stops, 1, 2, 80)


def test_half_a_stop_pair_rejected():
    with pytest.raises(ValidationError):
        price_per_seat(100_000, STOPS, 10, None, 80)


def test_unknown_stop():
    with pytest.raises(NotFoundError):
        price_per_seat(100_000, STOPS, 10, 99, 80)
