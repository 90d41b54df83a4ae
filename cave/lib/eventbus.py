"""Redis-based event bus for local broadcasting of agent activity.

The telemetry service publishes every report and every fan state change so
that local consumers (dashboards, loggers) can follow the cave without
talking to the remote plane.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any, Literal

import redis

from cave.lib.config import get_settings
from cave.logging import get_logger

logger = get_logger("lib.eventbus")


class Topic(StrEnum):
    """Event bus topics."""

    TELEMETRY = "cave.telemetry"
    FAN_STATE = "cave.fan_state"


@dataclass(frozen=True, slots=True)
class Event(ABC):
    """Base class for all event bus payloads."""

    @property
    @abstractmethod
    def topic(self) -> Topic:
        """Topic the event is published on."""

    @property
    @abstractmethod
    def event_type(self) -> str:
        """Discriminator field for event type identification."""

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for JSON serialization."""


@dataclass(frozen=True, slots=True)
class TelemetryEvent(Event):
    """Telemetry report as sent to the remote plane."""

    fanstate: str
    temperature: float
    humidity: float
    recording_time: datetime
    delivered: bool

    @property
    def topic(self) -> Topic:
        return Topic.TELEMETRY

    @property
    def event_type(self) -> Literal["telemetry"]:
        return "telemetry"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "fanstate": self.fanstate,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "recording_time": self.recording_time.strftime(
                "%Y-%m-%d %H:%M:%S"
            ),
            "epoch": int(self.recording_time.timestamp() * 1000),
            "delivered": self.delivered,
        }


@dataclass(frozen=True, slots=True)
class FanStateEvent(Event):
    """Fan state change."""

    state: str
    recording_time: datetime

    @property
    def topic(self) -> Topic:
        return Topic.FAN_STATE

    @property
    def event_type(self) -> Literal["fan_state"]:
        return "fan_state"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "state": self.state,
            "recording_time": self.recording_time.strftime(
                "%Y-%m-%d %H:%M:%S"
            ),
        }


class EventPublisher:
    """Publishes agent events to the event bus.

    Publishing is best effort: when not connected, or when Redis is
    unreachable, events are dropped with a log line.
    """

    def __init__(self) -> None:
        self._redis_url = get_settings().eventbus.redis_url
        self._client: redis.Redis | None = None

    def connect(self) -> None:
        """Connect to Redis."""
        self._client = redis.from_url(self._redis_url)
        logger.info("Event publisher connected to Redis")

    def publish(self, event: Event) -> None:
        """Publish an event on its topic."""
        if self._client is None:
            return

        message = json.dumps(event.to_dict())
        try:
            self._client.publish(event.topic, message)
        except (redis.RedisError, OSError) as e:
            logger.warning("Failed to publish to %s: %s", event.topic, e)
            return
        logger.debug("Published to %s: %s", event.topic, message)

    def close(self) -> None:
        """Close the publisher connection."""
        if self._client is not None:
            self._client.close()
            self._client = None
        logger.info("Event publisher closed")


# Global publisher instance (initialized by the telemetry service)
_publisher: EventPublisher | None = None


def get_publisher() -> EventPublisher:
    """Get or create the global publisher instance."""
    global _publisher
    if _publisher is None:
        _publisher = EventPublisher()
    return _publisher
