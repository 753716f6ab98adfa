"""Tests for the live alert hub, the null push notifier and the health route."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from alertbot.app import create_app
from alertbot.notify.hub import AlertHub
from alertbot.notify.push import NullPushNotifier


def _socket() -> AsyncMock:
    ws = AsyncMock()
    ws.send_json = AsyncMock()
    return ws


class TestAlertHub:
    """Per-user WebSocket fan-out."""

    @pytest.mark.asyncio
    async def test_connect_accepts_and_registers(self) -> None:
        hub = AlertHub()
        ws = _socket()

        await hub.connect(ws, 1)

        ws.accept.assert_awaited_once()
        assert hub.connections == {1: [ws]}
        assert hub.total_connections == 1

    @pytest.mark.asyncio
    async def test_broadcast_only_to_owner(self) -> None:
        hub = AlertHub()
        first, second, stranger = _socket(), _socket(), _socket()
        hub.connections = {1: [first, second], 2: [stranger]}

        delivered = await hub.broadcast_alert({"id": 10, "userId": 1})

        assert delivered == 2
        first.send_json.assert_awaited_once_with({"event": "alert", "data": {"id": 10, "userId": 1}})
        stranger.send_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_broken_socket_is_dropped(self) -> None:
        hub = AlertHub()
        healthy, broken = _socket(), _socket()
        broken.send_json.side_effect = RuntimeError("closed")
        hub.connections = {1: [broken, healthy]}

        delivered = await hub.broadcast_alert({"id": 10, "userId": 1})

        assert delivered == 1
        assert hub.connections == {1: [healthy]}

    @pytest.mark.asyncio
    async def test_last_broken_socket_removes_user(self) -> None:
        hub = AlertHub()
        broken = _socket()
        broken.send_json.side_effect = RuntimeError("closed")
        hub.connections = {1: [broken]}

        assert await hub.broadcast_alert({"id": 10, "userId": 1}) == 0
        assert hub.connections == {}

    @pytest.mark.asyncio
    async def test_no_listeners(self) -> None:
        assert await AlertHub().broadcast_alert({"id": 10, "userId": 3}) == 0

    def test_disconnect(self) -> None:
        hub = AlertHub()
        ws = _socket()
        hub.connections = {1: [ws]}
        hub.disconnect(ws, 1)
        hub.disconnect(ws, 1)
        assert hub.connections == {}


class TestNullPush:
    """Push without a transport."""

    @pytest.mark.asyncio
    async def test_reports_not_configured(self) -> None:
        result = await NullPushNotifier().notify_alert(1, {"id": 1})
        assert result.sent == 0
        assert result.skipped == "PUSH_NOT_CONFIGURED"


class TestHealthRoute:
    """GET /health."""

    def test_without_service(self) -> None:
        client = TestClient(create_app())

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "connections": 0,
            "service": None,
            "provider": None,
        }

    def test_with_service_and_provider(self) -> None:
        app = create_app()
        app.state.service = MagicMock()
        app.state.service.get_status.return_value = {"running": True}
        app.state.market_client = MagicMock()
        app.state.market_client.health.return_value = {"calls": 3}

        body = TestClient(app).get("/health").json()

        assert body["service"] == {"running": True}
        assert body["provider"] == {"calls": 3}
