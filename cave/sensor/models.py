"""Domain models for sensor readings and telemetry reports."""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from cave.fan.state import FanState
from cave.lib.config import Unit

_TWO_PLACES = Decimal("0.01")


def round2(value: float) -> float:
    """Round to 2 decimals, half away from zero.

    Works on the shortest decimal representation of the float, so 50.005
    rounds to 50.01 even though its binary value is slightly below it.
    """
    return float(Decimal(repr(value)).quantize(_TWO_PLACES, ROUND_HALF_UP))


@dataclass(slots=True)
class SensorReading:
    temperature_f: float
    humidity_pct: float
    recording_time: datetime

    def __str__(self) -> str:
        return (
            f"{self.temperature_f:.2f}{Unit.FAHRENHEIT}, "
            f"{self.humidity_pct:.2f}{Unit.PERCENT}"
        )


@dataclass(frozen=True, slots=True)
class TelemetryReport:
    """Snapshot sent to the remote plane once per interval."""

    fanstate: FanState
    humidity: float
    temperature: float

    @classmethod
    def build(cls, state: FanState, reading: SensorReading) -> "TelemetryReport":
        return cls(
            fanstate=state,
            humidity=round2(reading.humidity_pct),
            temperature=round2(reading.temperature_f),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "fanstate": self.fanstate.value,
            "humidity": self.humidity,
            "temperature": self.temperature,
        }
