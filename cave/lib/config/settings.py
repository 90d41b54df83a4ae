"""Settings models and configuration loading for the Cheese Cave agent."""

import logging
import re
from functools import cached_property, lru_cache
from typing import Annotated, Any, Self

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    SecretStr,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from cave.lib.config.constants import (
    BME280_HUMIDITY_BOUNDS,
    BME280_TEMPERATURE_BOUNDS_F,
)
from cave.lib.config.enums import MeasureName

# Raspberry Pi header pins as exposed by the `board` module (D0..D27)
_BOARD_PIN_PATTERN = re.compile(r"^D([0-9]|1[0-9]|2[0-7])$")

# Sensor physical bounds
BME280_BOUNDS = {
    MeasureName.TEMPERATURE: BME280_TEMPERATURE_BOUNDS_F,
    MeasureName.HUMIDITY: BME280_HUMIDITY_BOUNDS,
}


def _parse_bool(v: Any) -> bool:
    """Parse boolean from string '1'/'0' or actual bool."""
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        return v == "1"
    return bool(v)


def _parse_hex_int(v: Any) -> int:
    """Parse integer from string, supporting hex format (0x...)."""
    if isinstance(v, int):
        return v
    if isinstance(v, str):
        return int(v, 0)  # base 0 auto-detects hex/octal/decimal
    return int(v)


_BoolFromStr = Annotated[bool, BeforeValidator(_parse_bool)]
_HexInt = Annotated[int, BeforeValidator(_parse_hex_int)]


class IoTHubSettings(BaseModel):
    """Remote plane (IoT Hub) connection settings."""

    model_config = ConfigDict(frozen=True)

    connection_string: SecretStr = SecretStr("")
    sas_ttl_sec: int = 3600
    keepalive_sec: int = 60
    connect_timeout_sec: float = 30.0


class FanSettings(BaseModel):
    """Fan actuator settings."""

    model_config = ConfigDict(frozen=True)

    pin: str = "D21"


class SensorSettings(BaseModel):
    """BME280 sensor settings."""

    model_config = ConfigDict(frozen=True)

    i2c_address: int = 0x77
    timeout_sec: float = 5.0


class TelemetrySettings(BaseModel):
    """Telemetry loop settings."""

    model_config = ConfigDict(frozen=True)

    interval_ms: int = 5000
    report_timeout_sec: float = 10.0
    report_max_retries: int = 3
    report_initial_backoff_sec: float = 0.5

    @property
    def interval_sec(self) -> float:
        """Loop interval in seconds."""
        return self.interval_ms / 1000


class EventBusSettings(BaseModel):
    """Redis event bus settings."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    redis_url: str = "redis://localhost:6379/0"


class HealthSettings(BaseModel):
    """Health endpoint settings."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 8080


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"

    # Hardware
    mock_hardware: _BoolFromStr = False
    fan_pin: str = "D21"
    sensor_i2c_address: _HexInt = Field(default=0x77, ge=0x00, le=0x7F)
    sensor_timeout_sec: float = Field(default=5.0, gt=0)

    # IoT Hub
    iothub_connection_string: SecretStr = SecretStr("")
    iothub_sas_ttl_sec: int = Field(default=3600, ge=60)
    iothub_keepalive_sec: int = Field(default=60, ge=5)
    iothub_connect_timeout_sec: float = Field(default=30.0, gt=0)

    # Telemetry
    telemetry_interval_ms: int = Field(default=5000, ge=100)
    report_timeout_sec: float = Field(default=10.0, gt=0)
    report_max_retries: int = Field(default=3, ge=1)
    report_initial_backoff_sec: float = Field(default=0.5, ge=0)

    # Redis
    enable_eventbus: _BoolFromStr = False
    redis_url: str = "redis://localhost:6379/0"

    # Health endpoint
    enable_health_server: _BoolFromStr = False
    health_host: str = "127.0.0.1"
    health_port: int = Field(default=8080, gt=0, le=65535)

    @cached_property
    def iothub(self) -> IoTHubSettings:
        """Get IoT Hub settings as nested object."""
        return IoTHubSettings(
            connection_string=self.iothub_connection_string,
            sas_ttl_sec=self.iothub_sas_ttl_sec,
            keepalive_sec=self.iothub_keepalive_sec,
            connect_timeout_sec=self.iothub_connect_timeout_sec,
        )

    @cached_property
    def fan(self) -> FanSettings:
        """Get fan settings."""
        return FanSettings(pin=self.fan_pin)

    @cached_property
    def sensor(self) -> SensorSettings:
        """Get sensor settings."""
        return SensorSettings(
            i2c_address=self.sensor_i2c_address,
            timeout_sec=self.sensor_timeout_sec,
        )

    @cached_property
    def telemetry(self) -> TelemetrySettings:
        """Get telemetry loop settings."""
        return TelemetrySettings(
            interval_ms=self.telemetry_interval_ms,
            report_timeout_sec=self.report_timeout_sec,
            report_max_retries=self.report_max_retries,
            report_initial_backoff_sec=self.report_initial_backoff_sec,
        )

    @cached_property
    def eventbus(self) -> EventBusSettings:
        """Get event bus settings."""
        return EventBusSettings(
            enabled=self.enable_eventbus,
            redis_url=self.redis_url,
        )

    @cached_property
    def health(self) -> HealthSettings:
        """Get health endpoint settings."""
        return HealthSettings(
            enabled=self.enable_health_server,
            host=self.health_host,
            port=self.health_port,
        )

    @model_validator(mode="after")
    def validate_settings(self) -> Self:
        """Validate cross-field configuration constraints."""
        errors: list[str] = []

        if logging.getLevelNamesMapping().get(self.log_level.upper()) is None:
            errors.append(f"LOG_LEVEL ({self.log_level}) is not a valid level")

        if not _BOARD_PIN_PATTERN.match(self.fan_pin):
            errors.append(
                f"FAN_PIN ({self.fan_pin}) must be a board pin name like D21"
            )

        if (
            not self.mock_hardware
            and not self.iothub_connection_string.get_secret_value()
        ):
            errors.append(
                "IOTHUB_CONNECTION_STRING is required unless MOCK_HARDWARE=1"
            )

        if errors:
            raise ValueError(
                "Configuration validation failed:\n  - "
                + "\n  - ".join(errors)
            )

        return self


# Settings override for testing - allows injecting custom Settings without
# modifying environment variables or clearing the lru_cache.
_settings_override: Settings | None = None


@lru_cache(maxsize=1)
def _load_settings() -> Settings:
    """Load settings from environment (cached)."""
    return Settings()


def get_settings() -> Settings:
    """Get the global settings instance.

    Returns the test override if set, otherwise loads from environment
    variables (cached after first load). For testing, use set_settings()
    from cave.lib.config.testing to override.
    """
    if _settings_override is not None:
        return _settings_override
    return _load_settings()
