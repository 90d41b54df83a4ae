"""BME280 temperature/humidity sensor source."""

from datetime import UTC, datetime
from typing import Protocol

from cave.lib.config import get_settings
from cave.lib.exceptions import SensorUnavailable
from cave.logging import get_logger
from cave.sensor.models import SensorReading

logger = get_logger("sensor.bme280")


class BME280Device(Protocol):
    """Protocol for the raw BME280 driver interface."""

    @property
    def temperature(self) -> float: ...

    @property
    def relative_humidity(self) -> float: ...


class SensorSource(Protocol):
    """Protocol for anything able to produce a sensor reading."""

    def read(self) -> SensorReading: ...

    def close(self) -> None: ...


def celsius_to_fahrenheit(celsius: float) -> float:
    return celsius * 9 / 5 + 32


class BME280Sensor:
    """Reads temperature (°F) and humidity (%) from a BME280 device."""

    def __init__(self, device: BME280Device) -> None:
        self._device = device

    def read(self) -> SensorReading:
        """Read the sensor.

        Raises:
            SensorUnavailable: If the bus cannot be read.
        """
        try:
            temperature_c = self._device.temperature
            humidity = self._device.relative_humidity
        except (OSError, RuntimeError, ValueError) as e:
            raise SensorUnavailable(f"BME280 read failed: {e}") from e

        if temperature_c is None or humidity is None:
            raise SensorUnavailable("BME280 returned no data")

        return SensorReading(
            temperature_f=celsius_to_fahrenheit(temperature_c),
            humidity_pct=humidity,
            recording_time=datetime.now(UTC),
        )

    def close(self) -> None:
        """No-op, the I2C bus is shared and released at exit."""


def create_sensor() -> SensorSource:
    """Create sensor based on configuration."""
    settings = get_settings()

    if settings.mock_hardware:
        from cave.lib.mock import MockBME280Sensor

        logger.info("Using mock BME280 sensor")
        return MockBME280Sensor()

    import board
    from adafruit_bme280 import basic as adafruit_bme280

    address = settings.sensor.i2c_address
    try:
        device = adafruit_bme280.Adafruit_BME280_I2C(board.I2C(), address=address)
    except (OSError, RuntimeError, ValueError) as e:
        raise SensorUnavailable(
            f"BME280 not found at I2C address {address:#04x}: {e}"
        ) from e
    logger.info("BME280 sensor initialised at %#04x", address)
    return BME280Sensor(device)
