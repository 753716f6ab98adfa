"""WebSocket hub for live alert delivery to connected clients."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

log = structlog.get_logger(__name__)

router = APIRouter()


class AlertHub:
    """Tracks WebSocket connections per user and pushes alert payloads to them."""

    def __init__(self) -> None:
        self.connections: dict[int, list[WebSocket]] = {}

    @property
    def total_connections(self) -> int:
        return sum(len(sockets) for sockets in self.connections.values())

    async def connect(self, ws: WebSocket, user_id: int) -> None:
        """Accept a WebSocket connection and register it under ``user_id``."""
        await ws.accept()
        self.connections.setdefault(user_id, []).append(ws)
        log.info("alert_ws_connected", user_id=user_id, total=self.total_connections)

    def disconnect(self, ws: WebSocket, user_id: int) -> None:
        """Forget a WebSocket connection."""
        sockets = self.connections.get(user_id, [])
        if ws in sockets:
            sockets.remove(ws)
        if not sockets:
            self.connections.pop(user_id, None)
        log.info("alert_ws_disconnected", user_id=user_id, total=self.total_connections)

    async def broadcast_alert(self, payload: dict) -> int:
        """Send an alert to its owner's sockets, dropping broken connections.

        Fire-and-forget: returns the number of sockets reached and never raises.
        """
        user_id = payload.get("userId")
        sockets = self.connections.get(user_id, [])  # type: ignore[arg-type]
        delivered = 0
        for ws in sockets.copy():
            try:
                await ws.send_json({"event": "alert", "data": payload})
                delivered += 1
            except Exception:
                sockets.remove(ws)
                log.warning(
                    "alert_ws_broadcast_error",
                    user_id=user_id,
                    remaining=len(sockets),
                )
        if not sockets:
            self.connections.pop(user_id, None)  # type: ignore[arg-type]
        return delivered


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, user_id: int) -> None:
    """Live alert stream for one user (``/ws?user_id=...``)."""
    hub: AlertHub = websocket.app.state.hub
    await hub.connect(websocket, user_id)
    try:
        while True:
            # Consume messages to keep connection alive
            await websocket.receive_text()
    except WebSocketDisconnect:
        hub.disconnect(websocket, user_id)
