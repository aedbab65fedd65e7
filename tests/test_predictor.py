"""Tests for the accepted-location history."""

import pytest

from ble_indoor_positioning.models import Location
from ble_indoor_positioning.predictor import LocationPredictor


def _loc(lat: float, timestamp: float, lon: float = 0.0) -> Location:
    return Location(latitude=lat, longitude=lon, timestamp=timestamp)


def test_history_is_bounded_by_size() -> None:
    predictor = LocationPredictor(maximum_history_size=3, maximum_history_age=1e9)
    for i in range(5):
        predictor.add_location(_loc(float(i), timestamp=i * 100.0))
    assert [loc.latitude for loc in predictor.get_recent_locations()] == [2.0, 3.0, 4.0]


def test_history_drops_entries_older_than_age() -> None:
    predictor = LocationPredictor(maximum_history_size=10, maximum_history_age=1000)
    predictor.add_location(_loc(1.0, timestamp=0.0))
    predictor.add_location(_loc(2.0, timestamp=900.0))
    predictor.add_location(_loc(3.0, timestamp=1500.0))
    assert [loc.latitude for loc in predictor.get_recent_locations()] == [2.0, 3.0]


def test_mean_location_uses_window_relative_to_now() -> None:
    predictor = LocationPredictor()
    predictor.add_location(_loc(1.0, timestamp=1000.0))
    predictor.add_location(_loc(2.0, timestamp=2000.0))
    predictor.add_location(_loc(4.0, timestamp=3000.0))
    mean = predictor.get_mean_location(window=1000, now=3000.0)
    assert mean is not None
    assert mean.latitude == pytest.approx(3.0)
    assert mean.timestamp == 3000.0
    assert predictor.get_mean_location(window=100, now=10_000.0) is None


def test_smoothed_location_follows_exponential_average() -> None:
    predictor = LocationPredictor(ema_alpha=0.5)
    assert predictor.get_location() is None
    predictor.add_location(_loc(0.0, timestamp=0.0, lon=0.0))
    predictor.add_location(_loc(2.0, timestamp=100.0, lon=4.0))
    smoothed = predictor.get_location()
    assert smoothed.latitude == pytest.approx(1.0)
    assert smoothed.longitude == pytest.approx(2.0)
    assert smoothed.timestamp == 100.0


def test_clear_forgets_history() -> None:
    predictor = LocationPredictor()
    predictor.add_location(_loc(1.0, timestamp=0.0))
    predictor.clear()
    assert predictor.get_recent_locations() == []
    assert predictor.get_location() is None
