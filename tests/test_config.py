"""Tests for the configuration module."""

from unittest.mock import patch

import pytest
from pydantic import ValidationError

from cave.lib.config import (
    BME280_BOUNDS,
    MeasureName,
    Settings,
    TelemetrySettings,
    get_settings,
)
from cave.lib.config.testing import set_settings

_CONN = "HostName=cave.azure-devices.net;DeviceId=cave-1;SharedAccessKey=a2V5"


class TestSettingsDefaults:
    @patch.dict("os.environ", {"IOTHUB_CONNECTION_STRING": _CONN}, clear=True)
    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.mock_hardware is False
        assert settings.fan.pin == "D21"
        assert settings.sensor.i2c_address == 0x77
        assert settings.telemetry.interval_ms == 5000
        assert settings.telemetry.interval_sec == 5.0
        assert settings.telemetry.report_max_retries == 3
        assert settings.eventbus.enabled is False
        assert settings.health.enabled is False
        assert settings.iothub.connection_string.get_secret_value() == _CONN

    def test_telemetry_interval_sec(self):
        assert TelemetrySettings(interval_ms=2500).interval_sec == 2.5


class TestSettingsFromEnv:
    @patch.dict(
        "os.environ",
        {
            "MOCK_HARDWARE": "1",
            "FAN_PIN": "D17",
            "SENSOR_I2C_ADDRESS": "0x76",
            "TELEMETRY_INTERVAL_MS": "1000",
            "REPORT_MAX_RETRIES": "5",
            "ENABLE_HEALTH_SERVER": "1",
            "HEALTH_PORT": "9000",
        },
        clear=True,
    )
    def test_from_env(self):
        settings = Settings(_env_file=None)

        assert settings.mock_hardware is True
        assert settings.fan.pin == "D17"
        assert settings.sensor.i2c_address == 0x76
        assert settings.telemetry.interval_sec == 1.0
        assert settings.telemetry.report_max_retries == 5
        assert settings.health.enabled is True
        assert settings.health.port == 9000


class TestSettingsValidation:
    @patch.dict("os.environ", {}, clear=True)
    def test_connection_string_required_without_mock(self):
        with pytest.raises(ValidationError, match="IOTHUB_CONNECTION_STRING"):
            Settings(_env_file=None)

    def test_invalid_pin(self):
        with pytest.raises(ValidationError, match="FAN_PIN"):
            Settings(mock_hardware=True, fan_pin="GPIO21")

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError, match="LOG_LEVEL"):
            Settings(mock_hardware=True, log_level="chatty")

    def test_interval_lower_bound(self):
        with pytest.raises(ValidationError):
            Settings(mock_hardware=True, telemetry_interval_ms=10)

    def test_errors_are_collected(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(mock_hardware=True, fan_pin="X", log_level="nope")
        message = str(exc_info.value)
        assert "FAN_PIN" in message
        assert "LOG_LEVEL" in message


class TestGetSettings:
    def test_override(self):
        custom = Settings(mock_hardware=True, telemetry_interval_ms=250)
        set_settings(custom)
        assert get_settings() is custom


def test_bme280_bounds():
    assert BME280_BOUNDS[MeasureName.TEMPERATURE] == (-40.0, 185.0)
    assert BME280_BOUNDS[MeasureName.HUMIDITY] == (0.0, 100.0)
