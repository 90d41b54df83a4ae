"""Custom exceptions for the Cheese Cave agent.

Provides a hierarchy of domain-specific exceptions. Each kind is handled by
the component that owns it: command errors become client-error responses,
sensor and transport errors are logged and counted by the telemetry loop.
"""


class CaveError(Exception):
    """Base exception for all application errors."""


class ConfigurationError(CaveError):
    """Raised when the agent configuration is invalid."""


class SensorUnavailable(CaveError):
    """Raised when the sensor bus cannot be read."""

    def __init__(self, message: str = "Sensor unavailable") -> None:
        super().__init__(message)


class ActuatorFailed(CaveError):
    """Raised when the fan output reports a hardware fault."""


class InvalidParameter(CaveError):
    """Raised when a command payload does not decode to a fan state."""


class TransportFailure(CaveError):
    """Raised when the remote plane cannot accept or deliver a message."""
