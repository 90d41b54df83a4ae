"""Shared constants for the configuration module."""

# BME280 operating range: -40 to 85 Celsius, expressed in Fahrenheit
BME280_TEMPERATURE_BOUNDS_F = (-40.0, 185.0)
BME280_HUMIDITY_BOUNDS = (0.0, 100.0)

# Name of the direct method used to drive the fan
COMMAND_SET_FAN_STATE = "SetFanState"

# IoT Hub MQTT device API version
IOTHUB_API_VERSION = "2021-04-12"
