"""In-process counters describing agent activity.

The telemetry loop and command handler update a shared AgentMetrics
instance; the health endpoint exposes a snapshot of it.
"""

import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class AgentMetrics:
    reports_sent: int = 0
    reports_dropped: int = 0
    sensor_failures: int = 0
    commands_succeeded: int = 0
    commands_rejected: int = 0
    last_report_time: datetime | None = None
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def record_report(self, *, sent: bool) -> None:
        with self._lock:
            if sent:
                self.reports_sent += 1
                self.last_report_time = datetime.now(UTC)
            else:
                self.reports_dropped += 1

    def record_sensor_failure(self) -> None:
        with self._lock:
            self.sensor_failures += 1

    def record_command(self, *, succeeded: bool) -> None:
        with self._lock:
            if succeeded:
                self.commands_succeeded += 1
            else:
                self.commands_rejected += 1

    def snapshot(self) -> dict[str, Any]:
        """Return the counters as a JSON-serialisable dict."""
        with self._lock:
            return {
                "reports_sent": self.reports_sent,
                "reports_dropped": self.reports_dropped,
                "sensor_failures": self.sensor_failures,
                "commands_succeeded": self.commands_succeeded,
                "commands_rejected": self.commands_rejected,
                "last_report_time": (
                    self.last_report_time.isoformat()
                    if self.last_report_time is not None
                    else None
                ),
            }
