"""Shared pytest fixtures for the test suite."""

import logging
import sys
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

# Mock hardware-specific modules before they're imported
# These are only available on Raspberry Pi hardware
sys.modules["board"] = MagicMock()
sys.modules["busio"] = MagicMock()
sys.modules["digitalio"] = MagicMock()
sys.modules["adafruit_bme280"] = MagicMock()
sys.modules["adafruit_bme280.basic"] = MagicMock()

from cave.fan.state import FanStateMachine
from cave.lib.config import Settings
from cave.lib.config.testing import set_settings
from cave.lib.metrics import AgentMetrics
from cave.lib.mock import MockFanOutput, MockRemotePlane
from cave.sensor.models import SensorReading


@pytest.fixture(autouse=True)
def configure_caplog(caplog):
    """Ensure caplog captures logs from the cave namespace."""
    caplog.set_level(logging.INFO, logger="cave")


@pytest.fixture(autouse=True)
def test_settings():
    """Use mock hardware and fast retries for every test."""
    settings = Settings(
        mock_hardware=True,
        report_initial_backoff_sec=0.0,
        report_timeout_sec=1.0,
        sensor_timeout_sec=1.0,
    )
    set_settings(settings)
    yield settings
    set_settings(None)


@pytest.fixture
def frozen_time():
    """Return a fixed datetime for deterministic tests."""
    return datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def sample_reading(frozen_time):
    """Create a valid BME280 reading."""
    return SensorReading(
        temperature_f=68.123,
        humidity_pct=45.678,
        recording_time=frozen_time,
    )


@pytest.fixture
def fan_output():
    return MockFanOutput()


@pytest.fixture
def fan(fan_output):
    """Fan state machine starting in Off."""
    return FanStateMachine(fan_output)


@pytest.fixture
def metrics():
    return AgentMetrics()


@pytest.fixture
def remote():
    return MockRemotePlane()


@pytest.fixture
def mock_sensor(sample_reading):
    """Create a mock sensor returning the sample reading."""
    sensor = MagicMock()
    sensor.read = MagicMock(return_value=sample_reading)
    sensor.close = MagicMock()
    return sensor
