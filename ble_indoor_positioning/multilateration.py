from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Sequence, Tuple, Union

import numpy as np
from scipy.optimize import least_squares

from .beacon_filter import MINIMUM_BEACON_COUNT
from .distance import EARTH_RADIUS
from .models import Location

logger = logging.getLogger(__name__)

# (信标位置, 估计距离米)
Observation = Tuple[Location, float]


@dataclass(frozen=True)
class MultilaterationResult:
    location: Location
    residual: float  # 残差均方根 (米)


@dataclass(frozen=True)
class NonConvergence:
    reason: str


SolveOutcome = Union[MultilaterationResult, NonConvergence]


class Multilateration:
    """
    多边定位求解器：
    以信标质心为原点投影到局部平面（米），使用 Levenberg-Marquardt 最小二乘，
    超出评估次数或数值异常时返回 NonConvergence，不抛出异常。
    """

    def __init__(self, max_evaluations: int = 1000, tolerance: float = 1e-8):
        self.max_evaluations = int(max_evaluations)
        self.tolerance = float(tolerance)

    @classmethod
    def from_config(cls, solver_config: dict) -> "Multilateration":
        return cls(
            max_evaluations=solver_config.get("max_evaluations", 1000),
            tolerance=solver_config.get("tolerance", 1e-8),
        )

    def solve(self, observations: Sequence[Observation], timestamp: float) -> SolveOutcome:
        if len(observations) < MINIMUM_BEACON_COUNT:
            return NonConvergence(f"需要至少{MINIMUM_BEACON_COUNT}个信标，实际{len(observations)}个")

        anchors = [location for location, _ in observations]
        distances = np.array([float(d) for _, d in observations])
        origin_lat = float(np.mean([a.latitude for a in anchors]))
        origin_lon = float(np.mean([a.longitude for a in anchors]))
        points = np.array([_to_local(a, origin_lat, origin_lon) for a in anchors])

        def residuals(p: np.ndarray) -> np.ndarray:
            return np.hypot(points[:, 0] - p[0], points[:, 1] - p[1]) - distances

        try:
            res = least_squares(
                residuals,
                points.mean(axis=0),
                method="lm",
                max_nfev=self.max_evaluations,
                xtol=self.tolerance,
                ftol=self.tolerance,
            )
        except (ValueError, np.linalg.LinAlgError, FloatingPointError) as e:
            return NonConvergence(str(e))

        if not res.success:
            return NonConvergence(str(res.message))
        if not np.all(np.isfinite(res.x)) or not np.all(np.isfinite(res.fun)):
            return NonConvergence("求解结果非有限值")

        rms = float(np.sqrt(np.mean(res.fun**2)))
        latitude, longitude = _to_geodetic(res.x, origin_lat, origin_lon)
        altitude = None
        if all(a.has_altitude for a in anchors):
            altitude = float(np.mean([a.altitude for a in anchors]))
        location = Location(
            latitude=latitude,
            longitude=longitude,
            altitude=altitude,
            timestamp=timestamp,
            accuracy=rms,
        )
        logger.debug("多边定位完成: %d 个信标, rms=%.3f, 评估次数=%d", len(anchors), rms, res.nfev)
        return MultilaterationResult(location=location, residual=rms)


def _to_local(location: Location, origin_lat: float, origin_lon: float) -> Tuple[float, float]:
    # 等距圆柱投影，室内尺度下误差可忽略
    x = EARTH_RADIUS * math.radians(location.longitude - origin_lon) * math.cos(math.radians(origin_lat))
    y = EARTH_RADIUS * math.radians(location.latitude - origin_lat)
    return x, y


def _to_geodetic(point: np.ndarray, origin_lat: float, origin_lon: float) -> Tuple[float, float]:
    latitude = origin_lat + math.degrees(float(point[1]) / EARTH_RADIUS)
    longitude = origin_lon + math.degrees(
        float(point[0]) / (EARTH_RADIUS * math.cos(math.radians(origin_lat)))
    )
    return latitude, longitude
