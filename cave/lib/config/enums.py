"""Enumerations for the Cheese Cave agent."""

from enum import StrEnum


class Unit(StrEnum):
    """Measurement units for sensor readings."""

    FAHRENHEIT = "°F"
    PERCENT = "%"


class MeasureName(StrEnum):
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
