from __future__ import annotations

import threading
from typing import List, Optional

from .distance import mean_location
from .models import Location


class LocationPredictor:
    """维护最近被接受的位置历史，并提供平均位置与平滑后的估计位置"""

    def __init__(
        self,
        maximum_history_size: int = 10,
        maximum_history_age: float = 10000,
        ema_alpha: float = 0.3,
    ):
        self.lock = threading.Lock()
        self.location_history: List[Location] = []
        self.maximum_history_size = int(maximum_history_size)
        # 相对最新位置的最大保留时长（毫秒）
        self.maximum_history_age = float(maximum_history_age)

        # EMA滤波参数
        self.ema_alpha = float(ema_alpha)
        self.ema_last_location: Optional[Location] = None

    @classmethod
    def from_config(cls, predictor_config: dict) -> "LocationPredictor":
        return cls(
            maximum_history_size=predictor_config.get("maximum_history_size", 10),
            maximum_history_age=predictor_config.get("maximum_history_age", 10000),
            ema_alpha=predictor_config.get("ema_alpha", 0.3),
        )

    def add_location(self, location: Location) -> None:
        with self.lock:
            self.location_history.append(location)
            newest = location.timestamp
            self.location_history = [
                loc
                for loc in self.location_history
                if newest - loc.timestamp <= self.maximum_history_age
            ][-self.maximum_history_size :]
            self.ema_last_location = self._filter_ema(location)

    def get_recent_locations(self) -> List[Location]:
        with self.lock:
            return list(self.location_history)

    def get_mean_location(self, window: float, now: float) -> Optional[Location]:
        """最近 window 毫秒内位置的平均值，没有位置时返回 None"""
        recent = [loc for loc in self.get_recent_locations() if loc.timestamp >= now - window]
        return mean_location(recent)

    def get_location(self) -> Optional[Location]:
        with self.lock:
            return self.ema_last_location

    def clear(self) -> None:
        with self.lock:
            self.location_history = []
            self.ema_last_location = None

    def _filter_ema(self, location: Location) -> Location:
        """指数移动平均滤波"""
        last = self.ema_last_location
        if last is None:
            return location

        def blend(new: float, old: float) -> float:
            return self.ema_alpha * new + (1 - self.ema_alpha) * old

        altitude = location.altitude
        if location.has_altitude and last.has_altitude:
            altitude = blend(location.altitude, last.altitude)
        return Location(
            latitude=blend(location.latitude, last.latitude),
            longitude=blend(location.longitude, last.longitude),
            altitude=altitude,
            timestamp=location.timestamp,
            accuracy=location.accuracy,
        )
