"""BLE Indoor Positioning package.

This package provides:
- IndoorPositioningEngine: beacon-update driven location pipeline
- BeaconRegistry: beacon locations (CSV) and filtered RSSI sightings
- Multilateration: least-squares position solver
- LocationPredictor: accepted-location history and smoothing
- ConfigManager: YAML-based configuration management
"""

from .beacon_registry import BeaconRegistry
from .config_manager import ConfigManager, EngineConfig
from .engine import IndoorPositioningEngine, create_engine
from .models import Beacon, Location
from .multilateration import Multilateration, MultilaterationResult, NonConvergence
from .predictor import LocationPredictor

__all__ = [
    "Beacon",
    "BeaconRegistry",
    "ConfigManager",
    "EngineConfig",
    "IndoorPositioningEngine",
    "Location",
    "LocationPredictor",
    "Multilateration",
    "MultilaterationResult",
    "NonConvergence",
    "create_engine",
]
