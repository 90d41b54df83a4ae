"""Fan actuator state machine.

The fan is a tri-state device. ``On`` and ``Off`` are freely interchangeable
through commands; ``Failed`` is terminal for the lifetime of the process and
is entered only on a hardware fault reported by the physical output (or an
explicit ``mark_failed`` call). Every transition, including the output write,
runs under a single lock so telemetry snapshots never observe a half-applied
command.
"""

import threading
from collections.abc import Callable
from enum import Enum, StrEnum, auto
from typing import Any, Protocol

from cave.lib.exceptions import ActuatorFailed, InvalidParameter
from cave.logging import get_logger

logger = get_logger("fan.state")


class FanState(StrEnum):
    OFF = "Off"
    ON = "On"
    FAILED = "Failed"

    @classmethod
    def parse_target(cls, label: Any) -> "FanState":
        """Parse a caller-supplied target label.

        Only ``On`` and ``Off`` are legal targets; matching is case-sensitive.

        Raises:
            InvalidParameter: If the label is not ``On`` or ``Off``.
        """
        if label == cls.ON.value:
            return cls.ON
        if label == cls.OFF.value:
            return cls.OFF
        raise InvalidParameter(f"Invalid fan state: {label!r}")


class Outcome(Enum):
    APPLIED = auto()
    ACTUATOR_FAILED = auto()
    INVALID_PARAMETER = auto()


class FanOutputProtocol(Protocol):
    """Protocol for the physical fan line."""

    def write(self, level: bool) -> None: ...

    def close(self) -> None: ...


type StateListener = Callable[[FanState], None]


class FanStateMachine:
    """Owns the process-wide fan state and the physical output."""

    def __init__(
        self, output: FanOutputProtocol, initial: FanState = FanState.OFF
    ) -> None:
        self._output = output
        self._state = initial
        self._lock = threading.Lock()
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> FanState:
        with self._lock:
            return self._state

    def snapshot(self) -> FanState:
        """Return the current state for reporting."""
        return self.state

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback invoked after every state change."""
        self._listeners.append(listener)

    def apply(self, requested: Any) -> tuple[FanState, Outcome]:
        """Apply a requested target label.

        Returns:
            The resulting state and the outcome of the request.
        """
        with self._lock:
            previous = self._state
            if previous is FanState.FAILED:
                return previous, Outcome.ACTUATOR_FAILED

            try:
                target = FanState.parse_target(requested)
            except InvalidParameter as e:
                logger.debug("Rejected fan state request: %s", e)
                return previous, Outcome.INVALID_PARAMETER

            try:
                self._output.write(target is FanState.ON)
            except ActuatorFailed as e:
                logger.error("Fan output fault, marking fan failed: %s", e)
                self._state = FanState.FAILED
            else:
                self._state = target
            current = self._state

        if current is not previous:
            self._notify(current)
        if current is FanState.FAILED:
            return current, Outcome.ACTUATOR_FAILED
        return current, Outcome.APPLIED

    def mark_failed(self, reason: str) -> None:
        """Move the fan into the terminal failed state."""
        with self._lock:
            if self._state is FanState.FAILED:
                return
            self._state = FanState.FAILED
        logger.error("Fan marked failed: %s", reason)
        self._notify(FanState.FAILED)

    def close(self) -> None:
        """Release the physical output."""
        with self._lock:
            self._output.close()

    def _notify(self, state: FanState) -> None:
        for listener in self._listeners:
            try:
                listener(state)
            except Exception:
                logger.exception("Fan state listener raised an exception")
