"""Physical output driving the fan line over GPIO."""

from cave.fan.state import FanOutputProtocol
from cave.lib.config import get_settings
from cave.lib.exceptions import ActuatorFailed
from cave.logging import get_logger

logger = get_logger("fan.output")


class DigitalFanOutput:
    """Fan line on a Raspberry Pi header pin, via Blinka's digitalio."""

    def __init__(self, pin_name: str) -> None:
        import board
        import digitalio

        self._pin_name = pin_name
        self._line = digitalio.DigitalInOut(getattr(board, pin_name))
        self._line.direction = digitalio.Direction.OUTPUT
        self._line.value = False
        logger.info("Fan output initialised on %s", pin_name)

    def write(self, level: bool) -> None:
        """Drive the line high (fan on) or low (fan off).

        Raises:
            ActuatorFailed: If the GPIO line cannot be written.
        """
        if self._line is None:
            raise ActuatorFailed(f"Fan output {self._pin_name} is closed")
        try:
            self._line.value = level
        except (OSError, RuntimeError) as e:
            raise ActuatorFailed(
                f"Failed to write fan output {self._pin_name}: {e}"
            ) from e

    def close(self) -> None:
        """Drive the line low and release the pin."""
        if self._line is None:
            return
        try:
            self._line.value = False
        except (OSError, RuntimeError) as e:
            logger.warning("Could not drive fan output low on close: %s", e)
        self._line.deinit()
        self._line = None
        logger.info("Fan output %s released", self._pin_name)


def create_fan_output() -> FanOutputProtocol:
    """Create the fan output based on configuration."""
    settings = get_settings()

    if settings.mock_hardware:
        from cave.lib.mock import MockFanOutput

        logger.info("Using mock fan output")
        return MockFanOutput()

    return DigitalFanOutput(settings.fan.pin)
