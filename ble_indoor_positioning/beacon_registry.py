from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Protocol

import pandas as pd

from .config_manager import ConfigManager
from .models import Beacon, Location

logger = logging.getLogger(__name__)


class BeaconUpdateListener(Protocol):
    def on_beacon_updated(self, beacon: Beacon) -> None: ...


def _now_ms() -> float:
    return time.time() * 1000.0


def normalize_mac(mac: str) -> str:
    return str(mac).strip().upper()


class BeaconRegistry:
    """管理信标位置与扫描状态（pandas 读取位置表，内存维护 RSSI）"""

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        clock: Optional[Callable[[], float]] = None,
        rssi_alpha: Optional[float] = None,
    ):
        self.lock = threading.Lock()
        self._config = config_manager
        self._clock = clock or _now_ms
        self._beacons: Dict[str, Beacon] = {}
        self._listeners: List[BeaconUpdateListener] = []
        if rssi_alpha is None:
            rssi_alpha = (
                config_manager.get_rssi_model_config().get("filter_alpha", 0.3)
                if config_manager
                else 0.3
            )
        # RSSI 指数平滑系数
        self.rssi_alpha = float(rssi_alpha)

    # ---- Utils ----
    def _normalize_df(self, df: pd.DataFrame) -> pd.DataFrame:
        if "mac" not in df.columns:
            raise KeyError("CSV 文件缺少 'mac' 列")
        for col in ["longitude", "latitude", "altitude"]:
            if col not in df.columns:
                df[col] = float("nan")
            df[col] = pd.to_numeric(df[col], errors="coerce")
        # 没有坐标的信标无法参与定位
        df = df.dropna(subset=["latitude", "longitude"])
        df = df[["mac", "longitude", "latitude", "altitude"]].copy()
        df["mac"] = df["mac"].astype(str).map(normalize_mac)
        return df.drop_duplicates(subset=["mac"], keep="last").set_index("mac")

    # ---- Load ----
    def load(self, beacon_file_path: Optional[str] = None) -> int:
        """从CSV读取信标位置，返回加载数量"""
        if beacon_file_path is None:
            if self._config is None:
                raise ValueError("未指定信标位置文件")
            beacon_file_path = self._config.get_beacon_db_path()
        if not os.path.exists(beacon_file_path):
            logger.warning("信标位置文件不存在: %s", beacon_file_path)
            return 0
        df = self._normalize_df(pd.read_csv(beacon_file_path, dtype={"mac": str}))
        for mac, row in df.iterrows():
            altitude = row.at["altitude"]
            self.assign_location(
                str(mac),
                Location(
                    latitude=float(row.at["latitude"]),
                    longitude=float(row.at["longitude"]),
                    altitude=None if pd.isna(altitude) else float(altitude),
                ),
            )
        logger.info("已加载 %d 个信标位置: %s", len(df), beacon_file_path)
        return len(df)

    # ---- Mutations ----
    def assign_location(self, mac: str, location: Optional[Location]) -> Beacon:
        mac = normalize_mac(mac)
        with self.lock:
            beacon = self._beacons.get(mac) or Beacon(mac=mac)
            beacon = replace(beacon, location=location)
            self._beacons[mac] = beacon
        return beacon

    def record_sighting(
        self,
        mac: str,
        rssi: int,
        timestamp: Optional[float] = None,
        tx_power: Optional[float] = None,
    ) -> Beacon:
        """记录一次扫描结果，刷新滤波RSSI后同步通知监听者"""
        mac = normalize_mac(mac)
        now = self._clock() if timestamp is None else float(timestamp)
        with self.lock:
            beacon = self._beacons.get(mac) or Beacon(mac=mac)
            if beacon.last_seen is not None:
                filtered = self.rssi_alpha * rssi + (1 - self.rssi_alpha) * beacon.filtered_rssi
            else:
                filtered = float(rssi)
            beacon = replace(
                beacon,
                rssi=int(rssi),
                filtered_rssi=filtered,
                last_seen=now,
                tx_power=beacon.tx_power if tx_power is None else float(tx_power),
            )
            self._beacons[mac] = beacon
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener.on_beacon_updated(beacon)
            except Exception as e:
                logger.exception("信标更新通知出错: %s", e)
        return beacon

    # ---- Listeners ----
    def register_beacon_update_listener(self, listener: BeaconUpdateListener) -> bool:
        with self.lock:
            if any(existing is listener for existing in self._listeners):
                return False
            self._listeners.append(listener)
            return True

    def unregister_beacon_update_listener(self, listener: BeaconUpdateListener) -> bool:
        with self.lock:
            for index, existing in enumerate(self._listeners):
                if existing is listener:
                    del self._listeners[index]
                    return True
            return False

    # ---- Accessors ----
    def has(self, mac: str) -> bool:
        with self.lock:
            return normalize_mac(mac) in self._beacons

    def get(self, mac: str) -> Optional[Beacon]:
        with self.lock:
            return self._beacons.get(normalize_mac(mac))

    def get_all_beacons(self) -> List[Beacon]:
        with self.lock:
            return list(self._beacons.values())

    def __len__(self) -> int:
        with self.lock:
            return len(self._beacons)
