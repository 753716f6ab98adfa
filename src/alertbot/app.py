"""FastAPI application factory serving the live alert WebSocket."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request

from alertbot.notify import hub as hub_routes
from alertbot.notify.hub import AlertHub


def create_app(hub: AlertHub | None = None, lifespan: Any = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        hub: WebSocket hub shared with the alert engine. A new one is
             created when omitted.
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to inject startup/shutdown logic.

    Returns:
        Configured FastAPI application with the alert hub and routes.
    """
    app = FastAPI(title="Alert Engine", lifespan=lifespan)

    # Store WebSocket hub on app state for access from route handlers
    app.state.hub = hub or AlertHub()
    app.state.service = None
    app.state.market_client = None

    @app.get("/health")
    async def health(request: Request) -> dict:
        service = request.app.state.service
        market_client = request.app.state.market_client
        return {
            "status": "ok",
            "connections": request.app.state.hub.total_connections,
            "service": service.get_status() if service is not None else None,
            "provider": market_client.health() if market_client is not None else None,
        }

    app.include_router(hub_routes.router)

    return app
