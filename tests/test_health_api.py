"""Tests for the health check API endpoint."""

import json
from unittest.mock import MagicMock

import pytest
from starlette.testclient import TestClient

from cave.fan.state import FanState, FanStateMachine
from cave.lib.mock import MockFanOutput
from cave.server.health import EmbeddedServer, create_app, create_server, health_check


class TestHealthCheck:
    """Tests for health_check endpoint."""

    def _make_request(self, fan, remote, metrics):
        """Create a mock Starlette request carrying the agent state."""
        request = MagicMock()
        request.app.state.fan = fan
        request.app.state.remote = remote
        request.app.state.metrics = metrics
        return request

    @pytest.mark.asyncio
    async def test_healthy_when_connected(self, fan, remote, metrics):
        await remote.connect()
        metrics.record_report(sent=True)

        response = await health_check(self._make_request(fan, remote, metrics))

        body = json.loads(response.body)
        assert response.status_code == 200
        assert body["status"] == "healthy"
        assert body["checks"]["fan"] == {"ok": True, "state": "Off"}
        assert body["metrics"]["reports_sent"] == 1
        assert body["metrics"]["last_report_time"] is not None

    @pytest.mark.asyncio
    async def test_unhealthy_when_disconnected(self, fan, remote, metrics):
        response = await health_check(self._make_request(fan, remote, metrics))

        assert response.status_code == 503
        assert b'"status":"unhealthy"' in response.body
        assert json.loads(response.body)["checks"]["remote_plane"]["ok"] is False

    @pytest.mark.asyncio
    async def test_unhealthy_when_fan_failed(self, remote, metrics):
        await remote.connect()
        fan = FanStateMachine(MockFanOutput(), initial=FanState.FAILED)

        response = await health_check(self._make_request(fan, remote, metrics))

        assert response.status_code == 503
        assert json.loads(response.body)["checks"]["fan"]["state"] == "Failed"


class TestApp:
    @pytest.mark.asyncio
    async def test_route(self, fan, remote, metrics):
        await remote.connect()
        app = create_app(fan, remote, metrics)

        with TestClient(app) as client:
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["checks"]["remote_plane"]["ok"] is True

    def test_create_server(self, fan, remote, metrics):
        server = create_server(create_app(fan, remote, metrics), "127.0.0.1", 8081)

        assert isinstance(server, EmbeddedServer)
        assert server.config.port == 8081
