"""Tests for the BME280 sensor source."""

from unittest.mock import MagicMock, PropertyMock, patch

import pytest

from cave.lib.config import Settings
from cave.lib.config.testing import set_settings
from cave.lib.exceptions import SensorUnavailable
from cave.lib.mock import MockBME280Sensor
from cave.sensor.bme280 import BME280Sensor, celsius_to_fahrenheit, create_sensor


def _device(temperature=20.0, humidity=50.0):
    device = MagicMock()
    device.temperature = temperature
    device.relative_humidity = humidity
    return device


class TestBME280Sensor:
    def test_converts_to_fahrenheit(self):
        reading = BME280Sensor(_device(temperature=20.0, humidity=55.5)).read()

        assert reading.temperature_f == pytest.approx(68.0)
        assert reading.humidity_pct == 55.5

    def test_bus_error_raises_sensor_unavailable(self):
        device = MagicMock()
        type(device).temperature = PropertyMock(side_effect=OSError("I2C NACK"))

        with pytest.raises(SensorUnavailable, match="I2C NACK"):
            BME280Sensor(device).read()

    def test_missing_value_raises_sensor_unavailable(self):
        with pytest.raises(SensorUnavailable):
            BME280Sensor(_device(humidity=None)).read()

    @pytest.mark.parametrize(
        "celsius,fahrenheit", [(0, 32), (100, 212), (-40, -40), (12.5, 54.5)]
    )
    def test_celsius_to_fahrenheit(self, celsius, fahrenheit):
        assert celsius_to_fahrenheit(celsius) == pytest.approx(fahrenheit)


class TestCreateSensor:
    def test_mock_mode_returns_mock_sensor(self):
        assert isinstance(create_sensor(), MockBME280Sensor)

    def test_hardware_mode_uses_configured_address(self):
        set_settings(
            Settings(
                mock_hardware=False,
                iothub_connection_string="HostName=h;DeviceId=d;SharedAccessKey=a2V5",
                sensor_i2c_address="0x76",
            )
        )
        driver = MagicMock()
        with patch("adafruit_bme280.basic") as basic:
            basic.Adafruit_BME280_I2C.return_value = driver
            sensor = create_sensor()

        assert isinstance(sensor, BME280Sensor)
        assert basic.Adafruit_BME280_I2C.call_args.kwargs["address"] == 0x76

    def test_hardware_init_failure(self):
        set_settings(
            Settings(
                mock_hardware=False,
                iothub_connection_string="HostName=h;DeviceId=d;SharedAccessKey=a2V5",
            )
        )
        with patch("adafruit_bme280.basic") as basic:
            basic.Adafruit_BME280_I2C.side_effect = ValueError("No I2C device")
            with pytest.raises(SensorUnavailable, match="0x77"):
                create_sensor()


class TestMockSensor:
    def test_readings_within_cave_range(self):
        sensor = MockBME280Sensor()
        for _ in range(50):
            reading = sensor.read()
            assert 45.0 <= reading.temperature_f <= 65.0
            assert 70.0 <= reading.humidity_pct <= 98.0
