"""Health check endpoint exposing fan state and agent counters."""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from cave.fan.state import FanState, FanStateMachine
from cave.iothub.client import RemotePlane
from cave.lib.metrics import AgentMetrics
from cave.logging import get_logger

logger = get_logger("server.health")


async def health_check(request: Request) -> JSONResponse:
    """Return health status of the agent.

    The agent is healthy while the remote plane is connected and the fan
    has not failed.
    """
    fan: FanStateMachine = request.app.state.fan
    remote: RemotePlane = request.app.state.remote
    metrics: AgentMetrics = request.app.state.metrics

    fan_state = fan.snapshot()
    connected = remote.is_connected()
    is_healthy = connected and fan_state is not FanState.FAILED

    return JSONResponse(
        {
            "status": "healthy" if is_healthy else "unhealthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "checks": {
                "remote_plane": {"ok": connected},
                "fan": {"ok": fan_state is not FanState.FAILED, "state": fan_state.value},
            },
            "metrics": metrics.snapshot(),
        },
        status_code=200 if is_healthy else 503,
    )


def create_app(
    fan: FanStateMachine, remote: RemotePlane, metrics: AgentMetrics
) -> Starlette:
    """Create the Starlette application serving /health."""
    app = Starlette(routes=[Route("/health", health_check)])
    app.state.fan = fan
    app.state.remote = remote
    app.state.metrics = metrics
    return app


class EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the agent."""

    @contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def install_signal_handlers(self) -> None:
        pass


def create_server(app: Starlette, host: str, port: int) -> EmbeddedServer:
    """Create a uvicorn server to run inside the agent's event loop."""
    config = uvicorn.Config(app, host=host, port=port, log_config=None)
    logger.info("Health endpoint on http://%s:%d/health", host, port)
    return EmbeddedServer(config)
