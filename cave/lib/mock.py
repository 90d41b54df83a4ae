"""Mock hardware for development.

Provides mock implementations of the sensor, the fan output and the remote
plane that work without a Raspberry Pi or an IoT Hub. Used when
MOCK_HARDWARE=1 is set.
"""

import random
from collections.abc import Callable
from datetime import UTC, datetime

from cave.fan.commands import STATUS_NOT_FOUND, CommandRequest, CommandResponse
from cave.logging import get_logger
from cave.sensor.models import SensorReading, TelemetryReport

logger = get_logger("lib.mock")


def _random_walk(
    current: float, drift: float, min_val: float, max_val: float
) -> float:
    """Generate next value using random walk with bounds."""
    change = random.gauss(0, drift)
    new_val = current + change
    return max(min_val, min(max_val, new_val))


class MockBME280Sensor:
    """Mock BME280 sensor that generates cave-like readings.

    - Temperature: drift=0.1, bounds 45-65 °F
    - Humidity: drift=0.4, bounds 70-98 %
    """

    def __init__(self) -> None:
        self._temperature = random.uniform(52.0, 56.0)
        self._humidity = random.uniform(82.0, 88.0)

    def read(self) -> SensorReading:
        self._temperature = _random_walk(
            self._temperature, drift=0.1, min_val=45.0, max_val=65.0
        )
        self._humidity = _random_walk(
            self._humidity, drift=0.4, min_val=70.0, max_val=98.0
        )
        return SensorReading(
            temperature_f=self._temperature,
            humidity_pct=self._humidity,
            recording_time=datetime.now(UTC),
        )

    def close(self) -> None:
        """No-op for mock sensor."""


class MockFanOutput:
    """Mock fan output that records the levels written to it."""

    def __init__(self) -> None:
        self.level = False
        self.writes: list[bool] = []
        self.closed = False

    def write(self, level: bool) -> None:
        self.level = level
        self.writes.append(level)

    def close(self) -> None:
        self.level = False
        self.closed = True


class MockRemotePlane:
    """In-memory remote plane that keeps reports and invokes handlers locally."""

    def __init__(self) -> None:
        self.reports: list[TelemetryReport] = []
        self._handlers: dict[str, Callable[[CommandRequest], CommandResponse]] = {}
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected

    def register_command_handler(
        self, name: str, handler: Callable[[CommandRequest], CommandResponse]
    ) -> None:
        self._handlers[name] = handler

    async def connect(self, timeout: float = 30.0) -> None:
        self._connected = True

    async def disconnect(self, timeout: float = 5.0) -> None:
        self._connected = False

    async def report_state(self, report: TelemetryReport) -> None:
        self.reports.append(report)
        logger.info("Twin state reported (mock): %s", report.to_dict())

    def invoke(self, name: str, payload: bytes) -> CommandResponse:
        """Invoke a registered direct method as the hub would."""
        handler = self._handlers.get(name)
        if handler is None:
            return CommandResponse(
                STATUS_NOT_FOUND, f"Method not implemented: {name}"
            )
        return handler(CommandRequest(name, payload))
