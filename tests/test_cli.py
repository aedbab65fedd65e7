"""Tests for the replay command line."""

import pandas as pd

from helpers import make_location

from ble_indoor_positioning.cli import LOCATION_COLUMNS, load_sightings, main


def _write_beacons(path) -> None:
    rows = [
        ("AA:00", make_location()),
        ("AA:01", make_location(east=10.0)),
        ("AA:02", make_location(north=10.0)),
    ]
    pd.DataFrame(
        [{"mac": mac, "latitude": loc.latitude, "longitude": loc.longitude} for mac, loc in rows]
    ).to_csv(path, index=False)


def _write_sightings(path) -> None:
    rows = []
    for step in range(4):
        for i, mac in enumerate(["AA:00", "AA:01", "AA:02"]):
            rows.append({"timestamp": 1000 + step * 600 + i * 100, "mac": mac, "rssi": -73})
    pd.DataFrame(rows).sample(frac=1.0, random_state=3).to_csv(path, index=False)


def test_load_sightings_sorts_by_timestamp(tmp_path) -> None:
    path = tmp_path / "sightings.csv"
    _write_sightings(path)
    df = load_sightings(str(path))
    assert list(df["timestamp"]) == sorted(df["timestamp"])
    assert len(df) == 12


def test_replay_writes_accepted_locations(tmp_path) -> None:
    beacons = tmp_path / "beacons.csv"
    sightings = tmp_path / "sightings.csv"
    output = tmp_path / "locations.csv"
    _write_beacons(beacons)
    _write_sightings(sightings)

    code = main(
        [
            "--config",
            str(tmp_path / "config.yaml"),
            "replay",
            str(sightings),
            "--beacons",
            str(beacons),
            "--output",
            str(output),
        ]
    )

    assert code == 0
    result = pd.read_csv(output)
    assert list(result.columns) == LOCATION_COLUMNS
    assert len(result) >= 1
    assert result["timestamp"].is_monotonic_increasing


def test_replay_without_beacons_fails(tmp_path) -> None:
    sightings = tmp_path / "sightings.csv"
    _write_sightings(sightings)
    code = main(
        [
            "--config",
            str(tmp_path / "config.yaml"),
            "replay",
            str(sightings),
            "--beacons",
            str(tmp_path / "missing.csv"),
        ]
    )
    assert code == 1


def test_no_command_prints_help(capsys) -> None:
    assert main([]) == 1
    assert "replay" in capsys.readouterr().out
