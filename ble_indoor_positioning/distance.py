from __future__ import annotations

import math
from dataclasses import replace
from typing import Optional, Sequence

import numpy as np

from .models import Beacon, Location, Rssi2DistanceMethod

EARTH_RADIUS = 6_371_000.0


class RssiDistanceModel:
    """RSSI -> 距离 (米) 的路径损耗模型"""

    def __init__(
        self,
        tx_power: float = -59.0,
        path_loss_exponent: float = 2.0,
        a: float = -2.48,
        b: float = 67.81,
        method: Rssi2DistanceMethod = Rssi2DistanceMethod.DEFAULT,
    ):
        # 1米处的RSSI值 (dBm)
        self.tx_power = float(tx_power)
        # 路径损耗指数
        self.path_loss_exponent = float(path_loss_exponent)
        self.a = float(a)
        self.b = float(b)
        self.method = method

    @classmethod
    def from_config(cls, rssi_config: dict) -> "RssiDistanceModel":
        return cls(
            tx_power=rssi_config.get("tx_power", -59.0),
            path_loss_exponent=rssi_config.get("path_loss_exponent", 2.0),
            a=rssi_config.get("a", -2.48),
            b=rssi_config.get("b", 67.81),
            method=Rssi2DistanceMethod(rssi_config.get("method", "default")),
        )

    def rssi_to_distance(self, rssi: float, tx_power: Optional[float] = None) -> float:
        """
        基于RSSI计算距离 (单位: 米)
        DEFAULT 使用对数路径损耗模型，IMPROVED/IMPROVED_PLUS 使用线性拟合模型
        """
        match self.method:
            case Rssi2DistanceMethod.IMPROVED:
                r = (rssi + self.b) / self.a
                return max(r, 0.1)
            case Rssi2DistanceMethod.IMPROVED_PLUS:
                r = (rssi + 74.65) / -1.68 if rssi < -78 else (rssi + 64.8) / -6.48
                return max(r, 0.1)
            case Rssi2DistanceMethod.DEFAULT:
                if rssi == 0:
                    return -1.0
                reference = self.tx_power if tx_power is None else tx_power
                exponent = (reference - rssi) / (10.0 * self.path_loss_exponent)
                return math.pow(10, exponent)
            case _:
                return -1.0

    def beacon_distance(self, beacon: Beacon) -> float:
        return self.rssi_to_distance(beacon.filtered_rssi, beacon.tx_power)


def haversine_distance(pos1: Location, pos2: Location) -> float:
    """两点球面距离（米）。"""
    phi1 = math.radians(pos1.latitude)
    phi2 = math.radians(pos2.latitude)
    dphi = math.radians(pos2.latitude - pos1.latitude)
    dlambda = math.radians(pos2.longitude - pos1.longitude)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS * c


def bearing(pos1: Location, pos2: Location) -> float:
    """pos1 指向 pos2 的初始方位角（度，以北为0，顺时针 0~360）"""
    phi1 = math.radians(pos1.latitude)
    phi2 = math.radians(pos2.latitude)
    dlambda = math.radians(pos2.longitude - pos1.longitude)
    y = math.sin(dlambda) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dlambda)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def shift_location(location: Location, distance: float, angle: float) -> Location:
    """沿方位角 angle 将 location 平移 distance 米，其余字段保持不变"""
    delta = distance / EARTH_RADIUS
    theta = math.radians(angle)
    phi1 = math.radians(location.latitude)
    lambda1 = math.radians(location.longitude)
    phi2 = math.asin(
        math.sin(phi1) * math.cos(delta) + math.cos(phi1) * math.sin(delta) * math.cos(theta)
    )
    lambda2 = lambda1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * math.sin(phi2),
    )
    longitude = (math.degrees(lambda2) + 540.0) % 360.0 - 180.0
    return replace(location, latitude=math.degrees(phi2), longitude=longitude)


def speed_filter(previous: Location, candidate: Location, maximum_speed: float) -> Location:
    """
    速度合理性修正：
    若 previous -> candidate 的位移超过 maximum_speed (m/s) * 时间差 允许的距离，
    则沿相同方向截断到最大允许位移；否则原样返回 candidate。
    """
    elapsed = abs(candidate.timestamp - previous.timestamp) / 1000.0
    maximum_distance = max(maximum_speed * elapsed, 0.0)
    if haversine_distance(previous, candidate) <= maximum_distance:
        return candidate
    clamped = shift_location(previous, maximum_distance, bearing(previous, candidate))
    return replace(candidate, latitude=clamped.latitude, longitude=clamped.longitude)


def mean_location(locations: Sequence[Location]) -> Optional[Location]:
    """简单平均；仅当全部位置都带海拔时才计算海拔"""
    if not locations:
        return None
    lat = float(np.mean([loc.latitude for loc in locations]))
    lon = float(np.mean([loc.longitude for loc in locations]))
    altitude = None
    if all(loc.has_altitude for loc in locations):
        altitude = float(np.mean([loc.altitude for loc in locations]))
    accuracies = [loc.accuracy for loc in locations if loc.accuracy is not None]
    accuracy = float(np.mean(accuracies)) if accuracies else None
    return Location(
        latitude=lat,
        longitude=lon,
        altitude=altitude,
        timestamp=max(loc.timestamp for loc in locations),
        accuracy=accuracy,
    )
