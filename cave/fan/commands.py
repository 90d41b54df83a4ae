"""Direct method handling for the fan.

The remote plane delivers ``SetFanState`` invocations whose payload is the
target label, optionally JSON-quoted (``"On"`` or ``On``). Every request gets
exactly one response; nothing raised while handling a request escapes to the
transport.
"""

import json
from dataclasses import dataclass
from typing import Any

from cave.fan.state import FanStateMachine, Outcome
from cave.lib.exceptions import InvalidParameter
from cave.lib.metrics import AgentMetrics
from cave.logging import get_logger

logger = get_logger("fan.commands")

STATUS_OK = 200
STATUS_BAD_REQUEST = 400
STATUS_NOT_FOUND = 404
STATUS_INTERNAL_ERROR = 500

RESULT_FAN_FAILED = "Fan failed"
RESULT_INVALID_PARAMETER = "Invalid parameter"

_QUOTE_CHARS = "\"'"


@dataclass(frozen=True, slots=True)
class CommandRequest:
    method_name: str
    payload: bytes
    request_id: str = ""


@dataclass(frozen=True, slots=True)
class CommandResponse:
    status: int
    result: str

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300

    def body(self) -> dict[str, Any]:
        return {"result": self.result}

    def payload(self) -> bytes:
        """Serialise the body as compact JSON."""
        return json.dumps(self.body(), separators=(",", ":")).encode()


def decode_label(payload: bytes) -> str:
    """Decode a command payload into a target label.

    Raises:
        InvalidParameter: If the payload is not valid UTF-8.
    """
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidParameter(f"Payload is not UTF-8: {e}") from e
    return text.strip().strip(_QUOTE_CHARS)


class CommandHandler:
    """Applies fan commands to the state machine and formats responses."""

    def __init__(
        self, fan: FanStateMachine, metrics: AgentMetrics | None = None
    ) -> None:
        self._fan = fan
        self._metrics = metrics or AgentMetrics()

    def handle(self, request: CommandRequest) -> CommandResponse:
        try:
            response = self._handle(request)
        except Exception:
            logger.exception(
                "Unexpected error handling direct method %s", request.method_name
            )
            response = CommandResponse(STATUS_BAD_REQUEST, RESULT_INVALID_PARAMETER)

        body = response.payload().decode()
        if response.is_success:
            logger.info("Direct method succeeded: %s", body)
        else:
            logger.error("Direct method failed: %s", body)
        self._metrics.record_command(succeeded=response.is_success)
        return response

    def _handle(self, request: CommandRequest) -> CommandResponse:
        try:
            label = decode_label(request.payload)
        except InvalidParameter as e:
            logger.debug("%s", e)
            return CommandResponse(STATUS_BAD_REQUEST, RESULT_INVALID_PARAMETER)

        state, outcome = self._fan.apply(label)
        if outcome is Outcome.ACTUATOR_FAILED:
            return CommandResponse(STATUS_BAD_REQUEST, RESULT_FAN_FAILED)
        if outcome is Outcome.INVALID_PARAMETER:
            return CommandResponse(STATUS_BAD_REQUEST, RESULT_INVALID_PARAMETER)

        logger.info("Fan set to: %s", state)
        return CommandResponse(
            STATUS_OK, f"Executed direct method: {request.method_name}"
        )
