"""Tests for the residual and speed acceptance gate."""

import pytest

from helpers import make_location

from ble_indoor_positioning.acceptance import MAXIMUM_MOVEMENT_SPEED_NOT_SET, accept_location
from ble_indoor_positioning.distance import haversine_distance


def test_residual_equal_to_threshold_is_rejected() -> None:
    candidate = make_location(timestamp=1000.0)
    assert accept_location(candidate, 25.0, None, 25.0) is None


def test_residual_just_below_threshold_is_accepted() -> None:
    candidate = make_location(timestamp=1000.0)
    assert accept_location(candidate, 24.999, None, 25.0) is candidate


def test_unset_speed_never_clamps() -> None:
    previous = make_location(timestamp=0.0)
    candidate = make_location(east=500.0, timestamp=100.0)
    accepted = accept_location(candidate, 1.0, previous, 25.0, MAXIMUM_MOVEMENT_SPEED_NOT_SET)
    assert accepted is candidate


def test_speed_is_only_applied_with_previous_location() -> None:
    candidate = make_location(east=500.0, timestamp=100.0)
    assert accept_location(candidate, 1.0, None, 25.0, 1.0) is candidate


def test_configured_speed_clamps_candidate() -> None:
    previous = make_location(timestamp=0.0)
    candidate = make_location(east=50.0, timestamp=1000.0)
    accepted = accept_location(candidate, 1.0, previous, 25.0, 2.0)
    assert accepted is not None
    assert haversine_distance(previous, accepted) == pytest.approx(2.0, abs=1e-6)


def test_custom_speed_filter_receives_previous_candidate_and_speed() -> None:
    previous = make_location(timestamp=0.0)
    candidate = make_location(north=5.0, timestamp=1000.0)
    replacement = make_location(north=1.0, timestamp=1000.0)
    calls = []

    def fake_speed_filter(prev, cand, speed):
        calls.append((prev, cand, speed))
        return replacement

    accepted = accept_location(candidate, 1.0, previous, 25.0, 1.5, speed_filter=fake_speed_filter)
    assert accepted is replacement
    assert calls == [(previous, candidate, 1.5)]


def test_rejection_happens_before_speed_check() -> None:
    previous = make_location(timestamp=0.0)
    candidate = make_location(north=5.0, timestamp=1000.0)

    def failing_speed_filter(prev, cand, speed):
        raise AssertionError("speed filter must not run for rejected fixes")

    assert accept_location(candidate, 30.0, previous, 25.0, 1.0, failing_speed_filter) is None
