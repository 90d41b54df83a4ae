"""Centralized configuration for the Cheese Cave agent.

This package provides:
- Enums for measurements and units
- Pydantic settings models for configuration
- Shared constants (sensor bounds, command names)
"""

from .constants import COMMAND_SET_FAN_STATE, IOTHUB_API_VERSION
from .enums import MeasureName, Unit
from .settings import (
    BME280_BOUNDS,
    EventBusSettings,
    FanSettings,
    HealthSettings,
    IoTHubSettings,
    SensorSettings,
    Settings,
    TelemetrySettings,
    get_settings,
)

__all__ = [
    # Enums
    "MeasureName",
    "Unit",
    # Settings models
    "EventBusSettings",
    "FanSettings",
    "HealthSettings",
    "IoTHubSettings",
    "SensorSettings",
    "Settings",
    "TelemetrySettings",
    # Constants
    "BME280_BOUNDS",
    "COMMAND_SET_FAN_STATE",
    "IOTHUB_API_VERSION",
    # Functions
    "get_settings",
]
