"""Cheese cave telemetry agent.

Samples the BME280 at a fixed interval, reports the fan state and the
readings to the remote plane, and serves the ``SetFanState`` direct method.
Command handling runs on the same event loop as the telemetry loop; the
sensor read happens in a worker thread so a slow bus never delays commands.
"""

import asyncio
import math
import sys
from datetime import UTC, datetime
from typing import override

from cave.fan.commands import CommandHandler
from cave.fan.output import create_fan_output
from cave.fan.state import FanState, FanStateMachine
from cave.iothub.client import RemotePlane, create_remote_plane
from cave.lib.config import (
    BME280_BOUNDS,
    COMMAND_SET_FAN_STATE,
    MeasureName,
    get_settings,
)
from cave.lib.eventbus import (
    EventPublisher,
    FanStateEvent,
    TelemetryEvent,
    get_publisher,
)
from cave.lib.exceptions import CaveError, SensorUnavailable, TransportFailure
from cave.lib.metrics import AgentMetrics
from cave.lib.polling import PollingService
from cave.lib.retry import with_retry
from cave.logging import configure, get_logger
from cave.sensor.bme280 import SensorSource, create_sensor
from cave.sensor.models import SensorReading, TelemetryReport
from cave.server.health import EmbeddedServer, create_app, create_server

logger = get_logger("telemetry.service")


class TelemetryService(PollingService[SensorReading]):
    """Telemetry loop and direct method host for one cave."""

    def __init__(
        self,
        sensor: SensorSource,
        fan: FanStateMachine,
        remote: RemotePlane,
        *,
        metrics: AgentMetrics | None = None,
    ) -> None:
        super().__init__(name="telemetry")
        self._sensor = sensor
        self._fan = fan
        self._remote = remote
        self.metrics = metrics or AgentMetrics()
        self.commands = CommandHandler(fan, self.metrics)
        self._publisher: EventPublisher | None = None
        self._health_server: EmbeddedServer | None = None
        self._health_task: asyncio.Task[None] | None = None
        self._pending_read: asyncio.Task[SensorReading] | None = None
        self._stall_logged = False

    @override
    async def initialize(self) -> None:
        """Connect the event bus and remote plane, start the health endpoint."""
        settings = get_settings()

        if settings.eventbus.enabled:
            self._publisher = get_publisher()
            self._publisher.connect()
            self._fan.add_listener(self._publish_fan_state)

        self._remote.register_command_handler(
            COMMAND_SET_FAN_STATE, self.commands.handle
        )
        await self._remote.connect(timeout=settings.iothub.connect_timeout_sec)

        if settings.health.enabled:
            await self._start_health_server(settings.health.host, settings.health.port)

    async def _start_health_server(self, host: str, port: int) -> None:
        """Start the health endpoint, carrying on without it if it cannot bind."""
        app = create_app(self._fan, self._remote, self.metrics)
        server = create_server(app, host, port)
        task = asyncio.create_task(self._serve_health(server))
        while not server.started and not task.done():
            await asyncio.sleep(0.05)

        if not server.started:
            logger.error("Health endpoint did not start, continuing without it")
            return
        self._health_server = server
        self._health_task = task

    @staticmethod
    async def _serve_health(server: EmbeddedServer) -> None:
        # uvicorn calls sys.exit() when it cannot bind its socket
        try:
            await server.serve()
        except (OSError, SystemExit) as e:
            logger.error("Health endpoint stopped: %r", e)

    async def _stop_health_server(self) -> None:
        if self._health_server is None or self._health_task is None:
            return
        self._health_server.should_exit = True
        try:
            await self._health_task
        except Exception:
            logger.exception("Health endpoint raised while stopping")

    @override
    async def cleanup(self) -> None:
        """Stop the health endpoint, disconnect, and release hardware."""
        try:
            await self._stop_health_server()
            await self._remote.disconnect()
        finally:
            self._fan.close()
            self._sensor.close()
            if self._publisher is not None:
                self._publisher.close()

    @override
    async def poll(self) -> SensorReading | None:
        """Read the sensor in a worker thread, bounded by the sensor timeout.

        A read that outlives its timeout keeps its worker thread, so no new
        read is started until it returns.
        """
        if self._pending_read is not None and not self._pending_read.done():
            if not self._stall_logged:
                logger.warning("Previous sensor read still running, skipping cycle")
                self._stall_logged = True
            self.metrics.record_sensor_failure()
            return None
        self._stall_logged = False

        timeout = get_settings().sensor.timeout_sec
        read = asyncio.create_task(asyncio.to_thread(self._sensor.read))
        read.add_done_callback(_consume_result)
        self._pending_read = read
        try:
            reading = await asyncio.wait_for(asyncio.shield(read), timeout)
        except SensorUnavailable as e:
            logger.warning("Sensor unavailable, skipping cycle: %s", e)
            self.metrics.record_sensor_failure()
            return None
        except TimeoutError:
            logger.warning(
                "Sensor read timed out after %.1fs, skipping cycle", timeout
            )
            self.metrics.record_sensor_failure()
            return None

        logger.debug("Read %s", reading)
        return reading

    @override
    async def audit(self, reading: SensorReading) -> bool:
        """Reject readings outside the BME280 operating range."""
        values = {
            MeasureName.TEMPERATURE: reading.temperature_f,
            MeasureName.HUMIDITY: reading.humidity_pct,
        }
        for name, value in values.items():
            bmin, bmax = BME280_BOUNDS[name]
            if math.isnan(value) or value < bmin or value > bmax:
                logger.error(
                    "%s reading outside bounds of BME280 sensor: %s",
                    name.capitalize(),
                    value,
                )
                self.metrics.record_sensor_failure()
                return False
        return True

    @override
    async def report(self, reading: SensorReading) -> None:
        """Send the report to the remote plane, dropping it on final failure."""
        report = TelemetryReport.build(self._fan.snapshot(), reading)
        cfg = get_settings().telemetry

        async def submit() -> None:
            await self._remote.report_state(report)

        delivered = await with_retry(
            submit,
            name="Report state",
            logger=logger,
            max_retries=cfg.report_max_retries,
            initial_backoff_sec=cfg.report_initial_backoff_sec,
            retryable_exceptions=(TransportFailure, OSError),
            timeout_sec=cfg.report_timeout_sec,
        )
        self.metrics.record_report(sent=delivered)
        if not delivered:
            logger.error(
                "Dropped telemetry report %s (%d dropped so far)",
                report.to_dict(),
                self.metrics.reports_dropped,
            )

        if self._publisher is not None:
            self._publisher.publish(
                TelemetryEvent(
                    fanstate=report.fanstate.value,
                    temperature=report.temperature,
                    humidity=report.humidity,
                    recording_time=reading.recording_time,
                    delivered=delivered,
                )
            )

    def _publish_fan_state(self, state: FanState) -> None:
        if self._publisher is not None:
            self._publisher.publish(
                FanStateEvent(state=state.value, recording_time=datetime.now(UTC))
            )


def _consume_result(task: asyncio.Task[SensorReading]) -> None:
    # Reads abandoned after a timeout still finish; retrieve their outcome
    if not task.cancelled():
        task.exception()


def main() -> None:
    """Main entry point for the telemetry agent."""
    settings = get_settings()
    configure(settings.log_level.upper())
    logger.info("Cheese Cave device app.")

    try:
        sensor = create_sensor()
        fan = FanStateMachine(create_fan_output())
        remote = create_remote_plane()
        service = TelemetryService(sensor, fan, remote)
        service.run()
    except CaveError as e:
        logger.critical("Agent failed to start: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
