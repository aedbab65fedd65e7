"""Tests for the least-squares multilateration solver."""

import pytest

from helpers import make_location

from ble_indoor_positioning.distance import haversine_distance
from ble_indoor_positioning.models import Location
from ble_indoor_positioning.multilateration import (
    Multilateration,
    MultilaterationResult,
    NonConvergence,
)


def _square_anchors():
    return [
        make_location(),
        make_location(east=10.0),
        make_location(north=10.0),
        make_location(east=10.0, north=10.0),
    ]


def test_exact_ranges_recover_position() -> None:
    truth = make_location(east=3.0, north=4.0)
    observations = [(anchor, haversine_distance(anchor, truth)) for anchor in _square_anchors()]
    outcome = Multilateration().solve(observations, timestamp=1234.0)
    assert isinstance(outcome, MultilaterationResult)
    assert outcome.residual < 0.01
    assert haversine_distance(outcome.location, truth) < 0.05
    assert outcome.location.timestamp == 1234.0
    assert outcome.location.accuracy == pytest.approx(outcome.residual)


def test_inconsistent_ranges_report_residual() -> None:
    observations = [(anchor, 2.0) for anchor in _square_anchors()[:3]]
    outcome = Multilateration().solve(observations, timestamp=0.0)
    assert isinstance(outcome, MultilaterationResult)
    assert outcome.residual > 1.0


def test_altitude_is_averaged_when_all_anchors_have_one() -> None:
    anchors = [
        Location(latitude=a.latitude, longitude=a.longitude, altitude=float(i))
        for i, a in enumerate(_square_anchors()[:3])
    ]
    truth = make_location(east=2.0, north=2.0)
    observations = [(anchor, haversine_distance(anchor, truth)) for anchor in anchors]
    outcome = Multilateration().solve(observations, timestamp=0.0)
    assert isinstance(outcome, MultilaterationResult)
    assert outcome.location.altitude == pytest.approx(1.0)


def test_too_few_observations_do_not_converge() -> None:
    anchors = _square_anchors()[:2]
    outcome = Multilateration().solve([(a, 5.0) for a in anchors], timestamp=0.0)
    assert isinstance(outcome, NonConvergence)


def test_exhausted_evaluation_budget_does_not_converge() -> None:
    truth = make_location(east=1.0, north=8.5)
    observations = [(anchor, haversine_distance(anchor, truth)) for anchor in _square_anchors()]
    outcome = Multilateration(max_evaluations=1).solve(observations, timestamp=0.0)
    assert isinstance(outcome, NonConvergence)
