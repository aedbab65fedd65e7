from __future__ import annotations

import copy
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Optional

import yaml

from .models import Beacon

logger = logging.getLogger(__name__)


def _env_or_default(env_key: str, default: Any, cast: Callable[[str], Any] = str) -> Any:
    v = os.environ.get(env_key)
    if v is not None:
        try:
            return cast(v)
        except Exception:
            return v
    return default


DEFAULT_CONFIG_PATH = _env_or_default(
    "BLE_POSITIONING_CONFIG",
    os.path.join(".", "config", "config.yaml"),
)


@dataclass
class EngineConfig:
    """引擎运行参数，各字段可独立修改"""

    maximum_location_update_interval: float = 500
    root_mean_square_threshold: float = 25
    minimum_rssi_threshold: int = -70
    maximum_movement_speed: float = -1.0  # -1 表示未设置
    indoor_positioning_beacon_filter: Optional[Callable[[Beacon], bool]] = None
    # 整体替换可用性判定，签名同 beacon_filter.is_usable；None 表示使用默认判定
    usable_beacon_filter: Optional[Callable[[Beacon, float, Any], bool]] = None


class ConfigManager:
    """配置管理类，负责读写YAML配置文件"""

    def __init__(self, config_file: str | None = None):
        self.config_file = config_file or DEFAULT_CONFIG_PATH
        self.default_config = {
            "positioning": {
                "maximum_location_update_interval": _env_or_default(
                    "BLE_POS_UPDATE_INTERVAL", 500, float
                ),
                "root_mean_square_threshold": _env_or_default("BLE_POS_RMS_THRESHOLD", 25, float),
                "minimum_rssi_threshold": _env_or_default("BLE_POS_MIN_RSSI", -70, int),
                "maximum_movement_speed": _env_or_default("BLE_POS_MAX_SPEED", -1.0, float),
                "beacon_whitelist": [],
            },
            "rssi_model": {
                "tx_power": _env_or_default("BLE_RSSI_TX_POWER", -59, float),
                "path_loss_exponent": _env_or_default("BLE_RSSI_PATH_LOSS", 2.0, float),
                "a": _env_or_default("BLE_RSSI_A", -2.48, float),
                "b": _env_or_default("BLE_RSSI_B", 67.81, float),
                "method": _env_or_default("BLE_RSSI_METHOD", "default"),
                "filter_alpha": _env_or_default("BLE_RSSI_FILTER_ALPHA", 0.3, float),
            },
            "solver": {
                "max_evaluations": _env_or_default("BLE_SOLVER_MAX_EVALUATIONS", 1000, int),
                "tolerance": _env_or_default("BLE_SOLVER_TOLERANCE", 1e-8, float),
            },
            "predictor": {
                "maximum_history_size": _env_or_default("BLE_PREDICTOR_HISTORY_SIZE", 10, int),
                "maximum_history_age": _env_or_default("BLE_PREDICTOR_HISTORY_AGE", 10000, float),
                "ema_alpha": _env_or_default("BLE_PREDICTOR_EMA_ALPHA", 0.3, float),
            },
            "paths": {
                "beacon_db": _env_or_default(
                    "BLE_PATH_BEACON_DB", os.path.join(".", "beacon", "used.csv")
                ),
            },
        }
        self.load_config()

    def load_config(self) -> None:
        """加载配置文件，如果不存在则创建默认配置"""
        try:
            if os.path.exists(self.config_file):
                with open(self.config_file, "r", encoding="utf-8") as f:
                    loaded = yaml.safe_load(f) or {}
                if not isinstance(loaded, dict):
                    logger.warning(
                        "配置文件 %s 顶层不是映射，使用默认配置", self.config_file
                    )
                    self.config = copy.deepcopy(self.default_config)
                    return
                self.config = loaded
                self._merge_default_config()
            else:
                self.config = copy.deepcopy(self.default_config)
                self.save_config()
        except (OSError, yaml.YAMLError) as e:
            # 发生异常时回退到默认配置
            logger.warning("读取配置文件 %s 失败，使用默认配置: %s", self.config_file, e)
            self.config = copy.deepcopy(self.default_config)

    def _merge_default_config(self) -> None:
        def merge_dict(default, current):
            for key, value in default.items():
                if key not in current:
                    current[key] = copy.deepcopy(value)
                elif isinstance(value, dict) and not isinstance(current[key], dict):
                    # 节为空或类型错误时整体恢复默认
                    logger.warning("配置项 %s 不是映射，使用默认值", key)
                    current[key] = copy.deepcopy(value)
                elif isinstance(value, dict):
                    merge_dict(value, current[key])

        merge_dict(self.default_config, self.config)

    def save_config(self) -> None:
        try:
            os.makedirs(os.path.dirname(self.config_file) or ".", exist_ok=True)
            with open(self.config_file, "w", encoding="utf-8") as f:
                yaml.dump(
                    self.config,
                    f,
                    default_flow_style=False,
                    allow_unicode=True,
                    indent=2,
                )
        except OSError as e:
            logger.warning("保存配置文件 %s 失败: %s", self.config_file, e)

    # ---------- Accessors ----------
    def get_positioning_config(self):
        return self.config["positioning"]

    def get_rssi_model_config(self):
        return self.config["rssi_model"]

    def get_solver_config(self):
        return self.config["solver"]

    def get_predictor_config(self):
        return self.config["predictor"]

    def get_paths(self):
        return self.config.get("paths", {})

    def get_beacon_db_path(self):
        return self.get_paths()["beacon_db"]

    def get_engine_config(self) -> EngineConfig:
        p = self.get_positioning_config()
        return EngineConfig(
            maximum_location_update_interval=float(p["maximum_location_update_interval"]),
            root_mean_square_threshold=float(p["root_mean_square_threshold"]),
            minimum_rssi_threshold=int(p["minimum_rssi_threshold"]),
            maximum_movement_speed=float(p["maximum_movement_speed"]),
        )

    def set_positioning_config(
        self,
        maximum_location_update_interval=None,
        root_mean_square_threshold=None,
        minimum_rssi_threshold=None,
        maximum_movement_speed=None,
        beacon_whitelist=None,
    ):
        p = self.config["positioning"]
        if maximum_location_update_interval is not None:
            p["maximum_location_update_interval"] = maximum_location_update_interval
        if root_mean_square_threshold is not None:
            p["root_mean_square_threshold"] = root_mean_square_threshold
        if minimum_rssi_threshold is not None:
            p["minimum_rssi_threshold"] = minimum_rssi_threshold
        if maximum_movement_speed is not None:
            p["maximum_movement_speed"] = maximum_movement_speed
        if beacon_whitelist is not None:
            p["beacon_whitelist"] = list(beacon_whitelist)
        self.save_config()

