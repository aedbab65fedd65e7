from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class Location:
    """
    定位结果（不可变）
    timestamp 为毫秒级 Unix 时间戳，accuracy 为米
    """

    latitude: float
    longitude: float
    altitude: Optional[float] = None
    timestamp: float = 0.0
    accuracy: Optional[float] = None

    @property
    def has_altitude(self) -> bool:
        return self.altitude is not None


@dataclass(frozen=True)
class Beacon:
    """
    信标快照，由 BeaconRegistry 生成与刷新，引擎只读
    """

    mac: str
    rssi: int = -100
    filtered_rssi: float = -100.0
    location: Optional[Location] = None
    last_seen: Optional[float] = None  # 从未扫描到时为 None
    tx_power: Optional[float] = None  # 1米处校准RSSI，缺省使用配置值

    @property
    def has_location(self) -> bool:
        return self.location is not None

    def has_been_seen_in_the_past(self, duration: float, now: float) -> bool:
        """最近 duration 毫秒内是否被扫描到"""
        if self.last_seen is None:
            return False
        return now - self.last_seen < duration


class Rssi2DistanceMethod(Enum):
    DEFAULT = "default"
    IMPROVED = "improved"
    IMPROVED_PLUS = "improved+"


class LocationUpdateOutcome(Enum):
    UPDATED = "updated"
    INSUFFICIENT_BEACONS = "insufficient_beacons"
    NON_CONVERGENCE = "non_convergence"
    REJECTED = "rejected"
