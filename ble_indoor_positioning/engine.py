from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from typing import Callable, List, Optional, Protocol, Sequence

from .acceptance import accept_location
from .beacon_filter import (
    MAXIMUM_BEACON_COUNT,
    MINIMUM_BEACON_COUNT,
    BeaconFilter,
    UsableBeaconFilter,
    get_usable_beacons,
    is_usable,
    mac_address_filter,
    select_beacons,
)
from .config_manager import ConfigManager, EngineConfig
from .distance import RssiDistanceModel
from .models import Beacon, Location, LocationUpdateOutcome
from .multilateration import (
    Multilateration,
    MultilaterationResult,
    NonConvergence,
    Observation,
    SolveOutcome,
)
from .predictor import LocationPredictor

logger = logging.getLogger(__name__)

UPDATE_INTERVAL_IMMEDIATE = 50
UPDATE_INTERVAL_FAST = 100
UPDATE_INTERVAL_MEDIUM = 500
UPDATE_INTERVAL_SLOW = 3000

ROOT_MEAN_SQUARE_THRESHOLD_STRICT = 5
ROOT_MEAN_SQUARE_THRESHOLD_MEDIUM = 10
ROOT_MEAN_SQUARE_THRESHOLD_LIGHT = 25


class BeaconSource(Protocol):
    def get_all_beacons(self) -> Sequence[Beacon]: ...


class Solver(Protocol):
    def solve(self, observations: Sequence[Observation], timestamp: float) -> SolveOutcome: ...


class LocationListener(Protocol):
    def on_location_updated(self, engine: "IndoorPositioningEngine", location: Location) -> None: ...


def _now_ms() -> float:
    return time.time() * 1000.0


class IndoorPositioningEngine:
    """
    室内定位引擎：由信标更新事件驱动，依次执行
    时效检查 -> 信标选择 -> 多边定位 -> 精度/速度校验 -> 历史更新与通知。

    所有状态（配置、监听者、最后位置）由同一把可重入锁保护，
    一次更新周期在锁内完整执行；监听者在通知线程中同步回调，
    可在回调内再次调用引擎方法。监听者通知顺序不作保证。
    """

    def __init__(
        self,
        beacon_source: BeaconSource,
        solver: Optional[Solver] = None,
        config: Optional[EngineConfig] = None,
        location_predictor: Optional[LocationPredictor] = None,
        distance_model: Optional[RssiDistanceModel] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.lock = threading.RLock()
        self.beacon_source = beacon_source
        self.solver: Solver = solver or Multilateration()
        # 复制一份，调用方后续修改原对象不会影响引擎
        self._config = replace(config) if config is not None else EngineConfig()
        self._location_predictor = location_predictor or LocationPredictor()
        self.distance_model = distance_model or RssiDistanceModel()
        self._clock = clock or _now_ms
        self._last_known_location: Optional[Location] = None
        self._location_listeners: List[LocationListener] = []

    # ---------- Beacon events ----------
    def on_beacon_updated(self, beacon: Optional[Beacon] = None) -> None:
        with self.lock:
            now = self._clock()
            if not self._should_update_location(now):
                logger.debug("距上次定位不足 %s ms，跳过", self._config.maximum_location_update_interval)
                return
            self._update_location(now)

    def update_location(self) -> LocationUpdateOutcome:
        """忽略时效检查，立即执行一次定位"""
        with self.lock:
            return self._update_location(self._clock())

    def _should_update_location(self, now: float) -> bool:
        if self._last_known_location is None:
            return True
        elapsed = now - self._last_known_location.timestamp
        return elapsed >= self._config.maximum_location_update_interval

    def _update_location(self, now: float) -> LocationUpdateOutcome:
        beacons = select_beacons(
            self.beacon_source.get_all_beacons(),
            now,
            self._config.minimum_rssi_threshold,
            self._config.indoor_positioning_beacon_filter,
            self._config.usable_beacon_filter,
        )
        if len(beacons) < MINIMUM_BEACON_COUNT:
            logger.debug("可用信标不足 %d 个，跳过定位", MINIMUM_BEACON_COUNT)
            return LocationUpdateOutcome.INSUFFICIENT_BEACONS

        observations: List[Observation] = [
            (beacon.location, self.distance_model.beacon_distance(beacon)) for beacon in beacons
        ]
        outcome = self.solver.solve(observations, now)
        match outcome:
            case MultilaterationResult(location=candidate, residual=residual):
                pass
            case NonConvergence(reason=reason):
                # 数值求解不稳定属于已知限制，本周期直接放弃
                logger.debug("多边定位未收敛: %s", reason)
                return LocationUpdateOutcome.NON_CONVERGENCE
            case _:
                raise TypeError(f"未知的求解结果类型: {type(outcome).__name__}")

        location = accept_location(
            candidate,
            residual,
            self._last_known_location,
            self._config.root_mean_square_threshold,
            self._config.maximum_movement_speed,
        )
        if location is None:
            logger.debug(
                "定位残差过大: %.3f >= %.3f", residual, self._config.root_mean_square_threshold
            )
            return LocationUpdateOutcome.REJECTED

        self._location_predictor.add_location(location)
        self._last_known_location = location
        logger.info(
            "位置更新: (%.7f, %.7f), 信标数: %d, rms: %.3f",
            location.latitude,
            location.longitude,
            len(beacons),
            residual,
        )
        self._notify_location_listeners(location)
        return LocationUpdateOutcome.UPDATED

    def _notify_location_listeners(self, location: Location) -> None:
        for listener in list(self._location_listeners):
            try:
                listener.on_location_updated(self, location)
            except Exception as e:
                logger.exception("位置监听者处理出错: %s", e)

    # ---------- Locations ----------
    def get_last_known_location(self) -> Optional[Location]:
        with self.lock:
            return self._last_known_location

    def get_location(self) -> Optional[Location]:
        return self.get_last_known_location()

    def get_mean_location(self, window: float) -> Optional[Location]:
        """最近 window 毫秒内已接受位置的平均值"""
        with self.lock:
            predictor = self._location_predictor
            now = self._clock()
        return predictor.get_mean_location(window, now)

    def get_predicted_location(self) -> Optional[Location]:
        with self.lock:
            predictor = self._location_predictor
        return predictor.get_location()

    def get_usable_beacons(self) -> List[Beacon]:
        with self.lock:
            custom_filter = self._config.indoor_positioning_beacon_filter
            usable_filter = self._config.usable_beacon_filter
            now = self._clock()
        return get_usable_beacons(
            self.beacon_source.get_all_beacons(), now, custom_filter, usable_filter
        )

    # ---------- Listeners ----------
    def register_location_listener(self, listener: LocationListener) -> bool:
        with self.lock:
            if any(existing is listener for existing in self._location_listeners):
                return False
            self._location_listeners.append(listener)
            return True

    def unregister_location_listener(self, listener: LocationListener) -> bool:
        with self.lock:
            for index, existing in enumerate(self._location_listeners):
                if existing is listener:
                    del self._location_listeners[index]
                    return True
            return False

    # ---------- Getter & Setter ----------
    @property
    def maximum_movement_speed(self) -> float:
        with self.lock:
            return self._config.maximum_movement_speed

    @maximum_movement_speed.setter
    def maximum_movement_speed(self, value: float) -> None:
        with self.lock:
            self._config.maximum_movement_speed = value

    @property
    def maximum_location_update_interval(self) -> float:
        with self.lock:
            return self._config.maximum_location_update_interval

    @maximum_location_update_interval.setter
    def maximum_location_update_interval(self, value: float) -> None:
        with self.lock:
            self._config.maximum_location_update_interval = value

    @property
    def root_mean_square_threshold(self) -> float:
        with self.lock:
            return self._config.root_mean_square_threshold

    @root_mean_square_threshold.setter
    def root_mean_square_threshold(self, value: float) -> None:
        with self.lock:
            self._config.root_mean_square_threshold = value

    @property
    def minimum_rssi_threshold(self) -> int:
        with self.lock:
            return self._config.minimum_rssi_threshold

    @minimum_rssi_threshold.setter
    def minimum_rssi_threshold(self, value: int) -> None:
        with self.lock:
            self._config.minimum_rssi_threshold = value

    @property
    def indoor_positioning_beacon_filter(self) -> Optional[BeaconFilter]:
        with self.lock:
            return self._config.indoor_positioning_beacon_filter

    @indoor_positioning_beacon_filter.setter
    def indoor_positioning_beacon_filter(self, value: Optional[BeaconFilter]) -> None:
        with self.lock:
            self._config.indoor_positioning_beacon_filter = value

    @property
    def usable_beacon_filter(self) -> UsableBeaconFilter:
        with self.lock:
            return self._config.usable_beacon_filter or is_usable

    @usable_beacon_filter.setter
    def usable_beacon_filter(self, value: Optional[UsableBeaconFilter]) -> None:
        """设为 None 恢复默认判定"""
        with self.lock:
            self._config.usable_beacon_filter = value

    @property
    def location_predictor(self) -> LocationPredictor:
        with self.lock:
            return self._location_predictor

    @location_predictor.setter
    def location_predictor(self, value: LocationPredictor) -> None:
        with self.lock:
            self._location_predictor = value

    @property
    def minimum_beacon_count(self) -> int:
        return MINIMUM_BEACON_COUNT

    @property
    def maximum_beacon_count(self) -> int:
        return MAXIMUM_BEACON_COUNT

    @property
    def is_tracking(self) -> bool:
        return self.get_last_known_location() is not None


def create_engine(
    config_manager: ConfigManager,
    beacon_source: BeaconSource,
    clock: Optional[Callable[[], float]] = None,
) -> IndoorPositioningEngine:
    """按配置文件组装引擎及其默认求解器、预测器与测距模型"""
    config = config_manager.get_engine_config()
    whitelist = config_manager.get_positioning_config().get("beacon_whitelist") or []
    if whitelist:
        config.indoor_positioning_beacon_filter = mac_address_filter(whitelist)
    return IndoorPositioningEngine(
        beacon_source,
        solver=Multilateration.from_config(config_manager.get_solver_config()),
        config=config,
        location_predictor=LocationPredictor.from_config(config_manager.get_predictor_config()),
        distance_model=RssiDistanceModel.from_config(config_manager.get_rssi_model_config()),
        clock=clock,
    )
