from __future__ import annotations

from typing import Callable, List, Optional, Sequence

from ble_indoor_positioning.distance import shift_location
from ble_indoor_positioning.models import Beacon, Location
from ble_indoor_positioning.multilateration import (
    MultilaterationResult,
    NonConvergence,
    Observation,
    SolveOutcome,
)

ORIGIN = Location(latitude=52.5124, longitude=13.3906)


def make_location(east: float = 0.0, north: float = 0.0, timestamp: float = 0.0) -> Location:
    location = ORIGIN
    if north:
        location = shift_location(location, abs(north), 0.0 if north > 0 else 180.0)
    if east:
        location = shift_location(location, abs(east), 90.0 if east > 0 else 270.0)
    return Location(
        latitude=location.latitude, longitude=location.longitude, timestamp=timestamp
    )


def make_beacon(
    mac: str,
    filtered_rssi: float = -60.0,
    last_seen: float = 1000.0,
    location: Optional[Location] = ORIGIN,
) -> Beacon:
    return Beacon(
        mac=mac,
        rssi=int(filtered_rssi),
        filtered_rssi=filtered_rssi,
        location=location,
        last_seen=last_seen,
    )


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class StaticBeacons:
    def __init__(self, beacons: Sequence[Beacon]):
        self.beacons = list(beacons)
        self.reads = 0

    def get_all_beacons(self) -> List[Beacon]:
        self.reads += 1
        return list(self.beacons)


class FakeSolver:
    """Returns a fixed outcome, or a fix at `location` with `residual` stamped with the cycle time."""

    def __init__(
        self,
        residual: float = 2.0,
        location: Location = ORIGIN,
        outcome: Optional[Callable[[Sequence[Observation], float], SolveOutcome]] = None,
    ):
        self.residual = residual
        self.location = location
        self.outcome = outcome
        self.calls: List[List[Observation]] = []

    def solve(self, observations: Sequence[Observation], timestamp: float) -> SolveOutcome:
        self.calls.append(list(observations))
        if self.outcome is not None:
            return self.outcome(observations, timestamp)
        return MultilaterationResult(
            location=Location(
                latitude=self.location.latitude,
                longitude=self.location.longitude,
                timestamp=timestamp,
                accuracy=self.residual,
            ),
            residual=self.residual,
        )


def non_convergence(observations: Sequence[Observation], timestamp: float) -> SolveOutcome:
    return NonConvergence("too many evaluations")


class RecordingListener:
    def __init__(self):
        self.updates = []

    def on_location_updated(self, engine, location: Location) -> None:
        self.updates.append((engine, location))
