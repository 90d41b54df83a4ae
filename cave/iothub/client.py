"""Remote plane over the IoT Hub MQTT device protocol.

Wraps the threaded paho-mqtt client for use from asyncio. Direct method
invocations arrive on ``$iothub/methods/POST/<name>/?$rid=<rid>`` and are
answered on ``$iothub/methods/res/<status>/?$rid=<rid>``. Reported state is
pushed as a device twin patch and acknowledged on ``$iothub/twin/res/``.
"""

import asyncio
import itertools
import json
import ssl
from collections.abc import Callable
from typing import Any, Protocol
from urllib.parse import parse_qs

import paho.mqtt.client as mqtt

from cave.fan.commands import (
    STATUS_INTERNAL_ERROR,
    STATUS_NOT_FOUND,
    CommandRequest,
    CommandResponse,
)
from cave.iothub.connection import ConnectionString, generate_sas_token
from cave.lib.config import IOTHUB_API_VERSION, get_settings
from cave.lib.exceptions import TransportFailure
from cave.logging import get_logger
from cave.sensor.models import TelemetryReport

logger = get_logger("iothub.client")

MQTT_TLS_PORT = 8883

METHODS_SUBSCRIBE_TOPIC = "$iothub/methods/POST/#"
TWIN_RESPONSE_SUBSCRIBE_TOPIC = "$iothub/twin/res/#"
_METHODS_PREFIX = "$iothub/methods/POST/"
_TWIN_RESPONSE_PREFIX = "$iothub/twin/res/"

type CommandCallback = Callable[[CommandRequest], CommandResponse]
type ClientFactory = Callable[[str], mqtt.Client]


class RemotePlane(Protocol):
    """Protocol for the transport delivering commands and accepting reports."""

    def is_connected(self) -> bool: ...
    def register_command_handler(
        self, name: str, handler: CommandCallback
    ) -> None: ...
    async def connect(self, timeout: float = 30.0) -> None: ...
    async def disconnect(self, timeout: float = 5.0) -> None: ...
    async def report_state(self, report: TelemetryReport) -> None: ...


def _create_mqtt_client(client_id: str) -> mqtt.Client:
    return mqtt.Client(
        mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id,
        protocol=mqtt.MQTTv311,
    )


def _split_topic(topic: str, prefix: str) -> tuple[str, str]:
    """Split ``<prefix><segment>/?$rid=<rid>`` into (segment, rid)."""
    segment, _, query = topic[len(prefix):].partition("/?")
    rid = parse_qs(query).get("$rid", [""])[0]
    return segment, rid


class IoTHubClient:
    """Async-friendly IoT Hub device client."""

    def __init__(
        self,
        connection: ConnectionString,
        *,
        sas_ttl_sec: int = 3600,
        keepalive: int = 60,
        client_factory: ClientFactory = _create_mqtt_client,
    ) -> None:
        self._connection = connection
        self._sas_ttl_sec = sas_ttl_sec
        self._keepalive = keepalive
        self._client_factory = client_factory

        self._client: mqtt.Client | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._connected_event: asyncio.Event | None = None
        self._disconnect_event: asyncio.Event | None = None
        self._last_connect_failed = False
        self._connected = False
        self._handlers: dict[str, CommandCallback] = {}
        self._pending: dict[str, asyncio.Future[int]] = {}
        self._request_ids = itertools.count(1)

    @property
    def username(self) -> str:
        return (
            f"{self._connection.host_name}/{self._connection.device_id}"
            f"/?api-version={IOTHUB_API_VERSION}"
        )

    def _password(self) -> str:
        return generate_sas_token(
            self._connection.resource_uri,
            self._connection.shared_access_key,
            self._sas_ttl_sec,
        )

    def is_connected(self) -> bool:
        return self._connected

    def register_command_handler(self, name: str, handler: CommandCallback) -> None:
        """Register the handler answering direct method ``name``."""
        self._handlers[name] = handler
        logger.info("Registered direct method handler %s", name)

    async def connect(self, timeout: float = 30.0) -> None:
        """Connect to the hub and wait for acknowledgement.

        Raises:
            TransportFailure: If the hub rejects or does not answer in time.
        """
        self._loop = asyncio.get_running_loop()
        self._connected_event = asyncio.Event()
        self._disconnect_event = asyncio.Event()
        self._last_connect_failed = False

        client = self._client_factory(self._connection.device_id)
        client.enable_logger(get_logger("iothub.mqtt"))
        client.username_pw_set(self.username, self._password())
        client.tls_set_context(ssl.create_default_context())
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        self._client = client

        logger.info(
            "Connecting to IoT Hub %s as %s",
            self._connection.host_name,
            self._connection.device_id,
        )
        try:
            client.connect_async(
                self._connection.host_name, MQTT_TLS_PORT, self._keepalive
            )
        except (OSError, ValueError) as e:
            self._client = None
            raise TransportFailure(f"Cannot connect to IoT Hub: {e}") from e
        client.loop_start()

        try:
            await asyncio.wait_for(self._connected_event.wait(), timeout=timeout)
        except TimeoutError as e:
            client.loop_stop()
            self._client = None
            raise TransportFailure("Timed out connecting to IoT Hub") from e

        if self._last_connect_failed:
            client.loop_stop()
            self._client = None
            raise TransportFailure("IoT Hub rejected the connection")

    async def disconnect(self, timeout: float = 5.0) -> None:
        """Gracefully disconnect from the hub."""
        client = self._client
        if client is None or self._disconnect_event is None:
            return

        client.disconnect()
        try:
            await asyncio.wait_for(self._disconnect_event.wait(), timeout=timeout)
        except TimeoutError:
            logger.warning("Timed out waiting for IoT Hub disconnect")
        finally:
            client.loop_stop()
            self._client = None
            self._connected = False
            self._fail_pending("Client disconnected")

    async def report_state(self, report: TelemetryReport) -> None:
        """Push a reported-properties patch and wait for the hub to accept it.

        Raises:
            TransportFailure: If the patch cannot be sent or is rejected.
        """
        if self._loop is None:
            raise TransportFailure("connect() must be called first")
        rid = str(next(self._request_ids))
        future: asyncio.Future[int] = self._loop.create_future()
        self._pending[rid] = future
        try:
            self._publish(
                f"$iothub/twin/PATCH/properties/reported/?$rid={rid}",
                json.dumps(report.to_dict()).encode(),
            )
            status = await future
        finally:
            self._pending.pop(rid, None)

        if not 200 <= status < 300:
            raise TransportFailure(f"IoT Hub rejected reported state ({status})")
        logger.info("Twin state reported: %s", json.dumps(report.to_dict()))

    def _publish(self, topic: str, payload: bytes) -> None:
        if self._client is None or not self._connected:
            raise TransportFailure("IoT Hub client not connected")
        info = self._client.publish(topic, payload, qos=1)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportFailure(f"Publish failed with rc={info.rc}")

    def _dispatch_method(self, name: str, rid: str, payload: bytes) -> None:
        """Run a direct method handler and publish its response."""
        handler = self._handlers.get(name)
        if handler is None:
            logger.warning("No handler registered for direct method %s", name)
            response = CommandResponse(
                STATUS_NOT_FOUND, f"Method not implemented: {name}"
            )
        else:
            try:
                response = handler(CommandRequest(name, payload, rid))
            except Exception:
                logger.exception("Direct method handler %s raised", name)
                response = CommandResponse(
                    STATUS_INTERNAL_ERROR, f"Direct method {name} failed"
                )

        try:
            self._publish(
                f"$iothub/methods/res/{response.status}/?$rid={rid}",
                response.payload(),
            )
        except TransportFailure as e:
            logger.error("Could not deliver response to %s (rid=%s): %s", name, rid, e)

    def _resolve_twin(self, rid: str, status: int) -> None:
        future = self._pending.get(rid)
        if future is not None and not future.done():
            future.set_result(status)

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(TransportFailure(reason))

    def _call_soon(self, callback: Callable[..., Any], *args: Any) -> None:
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(callback, *args)

    # ------------------------------------------------------------------
    # paho callbacks, run on the paho network thread
    # ------------------------------------------------------------------
    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            logger.error("IoT Hub connection failed: %s", reason_code)
            self._last_connect_failed = True
            self._connected = False
        else:
            logger.info("Connected to IoT Hub")
            self._connected = True
            client.subscribe(
                [(METHODS_SUBSCRIBE_TOPIC, 1), (TWIN_RESPONSE_SUBSCRIBE_TOPIC, 1)]
            )
        if self._connected_event is not None:
            self._call_soon(self._connected_event.set)

    def _on_disconnect(
        self, client, userdata, disconnect_flags, reason_code, properties
    ) -> None:
        logger.info("Disconnected from IoT Hub (%s)", reason_code)
        self._connected = False
        # paho reconnects with the stored credentials; refresh the SAS token
        client.username_pw_set(self.username, self._password())
        self._call_soon(self._fail_pending, "Connection lost")
        if self._disconnect_event is not None:
            self._call_soon(self._disconnect_event.set)

    def _on_message(self, client, userdata, message: mqtt.MQTTMessage) -> None:
        topic = message.topic
        if topic.startswith(_METHODS_PREFIX):
            name, rid = _split_topic(topic, _METHODS_PREFIX)
            self._call_soon(self._dispatch_method, name, rid, message.payload)
        elif topic.startswith(_TWIN_RESPONSE_PREFIX):
            status, rid = _split_topic(topic, _TWIN_RESPONSE_PREFIX)
            try:
                self._call_soon(self._resolve_twin, rid, int(status))
            except ValueError:
                logger.warning("Malformed twin response topic: %s", topic)
        else:
            logger.debug("Ignoring message on %s", topic)


def create_remote_plane() -> RemotePlane:
    """Create the remote plane based on configuration.

    In mock mode without a connection string, a local in-memory plane is
    used so the agent can run without an IoT Hub.
    """
    settings = get_settings()
    cfg = settings.iothub
    raw = cfg.connection_string.get_secret_value()

    if settings.mock_hardware and not raw:
        from cave.lib.mock import MockRemotePlane

        logger.info("Using mock remote plane")
        return MockRemotePlane()

    connection = ConnectionString.parse(raw)
    return IoTHubClient(
        connection,
        sas_ttl_sec=cfg.sas_ttl_sec,
        keepalive=cfg.keepalive_sec,
    )
