from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import asdict
from typing import List

import pandas as pd

from .beacon_registry import BeaconRegistry
from .config_manager import ConfigManager
from .engine import IndoorPositioningEngine, create_engine
from .models import Location

logger = logging.getLogger(__name__)

LOCATION_COLUMNS = ["timestamp", "latitude", "longitude", "altitude", "accuracy"]


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


class ReplayClock:
    """回放时钟：时间跟随记录中的扫描时间戳"""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class LocationCollector:
    def __init__(self):
        self.locations: List[Location] = []

    def on_location_updated(self, engine: IndoorPositioningEngine, location: Location) -> None:
        self.locations.append(location)


def load_sightings(path: str) -> pd.DataFrame:
    """读取扫描记录CSV（timestamp 毫秒, mac, rssi），按时间排序"""
    df = pd.read_csv(path, dtype={"mac": str})
    missing = {"timestamp", "mac", "rssi"} - set(df.columns)
    if missing:
        raise KeyError(f"扫描记录缺少列: {', '.join(sorted(missing))}")
    df["timestamp"] = pd.to_numeric(df["timestamp"], errors="coerce")
    df["rssi"] = pd.to_numeric(df["rssi"], errors="coerce")
    df = df.dropna(subset=["timestamp", "mac", "rssi"])
    return df.sort_values("timestamp", kind="stable").reset_index(drop=True)


def run_replay(args) -> int:
    config = ConfigManager(args.config)
    clock = ReplayClock()
    registry = BeaconRegistry(config, clock=clock)
    if registry.load(args.beacons) == 0:
        logger.error("没有可用的信标位置，无法定位")
        return 1

    engine = create_engine(config, registry, clock=clock)
    collector = LocationCollector()
    engine.register_location_listener(collector)
    registry.register_beacon_update_listener(engine)

    sightings = load_sightings(args.sightings)
    for row in sightings.itertuples(index=False):
        clock.now = float(row.timestamp)
        registry.record_sighting(row.mac, int(row.rssi), timestamp=clock.now)

    df = pd.DataFrame([asdict(loc) for loc in collector.locations], columns=LOCATION_COLUMNS)
    logger.info("回放完成: %d 条扫描记录, %d 个定位结果", len(sightings), len(df))
    if args.output:
        df.to_csv(args.output, index=False, encoding="utf-8")
    else:
        print(df.to_string(index=False))
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="ble-indoor-positioning", description="BLE Indoor Positioning CLI"
    )
    parser.add_argument(
        "--config",
        default=None,
        help="配置文件路径，默认读取 ./config/config.yaml 或环境变量 BLE_POSITIONING_CONFIG",
    )
    parser.add_argument("--log-level", default="INFO", help="日志级别，默认 INFO")
    sub = parser.add_subparsers(dest="cmd")

    p_replay = sub.add_parser("replay", help="回放扫描记录CSV并输出定位结果")
    p_replay.add_argument("sightings", help="扫描记录CSV（timestamp,mac,rssi）")
    p_replay.add_argument("--beacons", default=None, help="信标位置CSV，默认使用配置 paths.beacon_db")
    p_replay.add_argument("--output", default=None, help="定位结果输出CSV，缺省时打印到终端")
    p_replay.set_defaults(func=run_replay)

    args = parser.parse_args(argv)
    setup_logging(args.log_level)
    if not hasattr(args, "func"):
        parser.print_help()
        return 1
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
