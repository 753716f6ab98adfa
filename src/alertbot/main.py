"""Entry point for the alert engine service.

Wires all components together, optionally serves the live alert WebSocket,
and starts the scan/outcome loops. When the server is enabled (default),
the service and FastAPI share a single asyncio event loop via uvicorn's
programmatic API and FastAPI's lifespan context manager.

Handles SIGINT/SIGTERM for graceful shutdown.

Component wiring order (in _build_components):
1. AlertDatabase + AlertStore (connect, detect optional tables)
2. FinnhubClient (rate-limited market data)
3. SnapshotBuilder (quote + candles -> indicators, synthetic fallback)
4. AnthropicReviewer + SignalValidator (optional AI review)
5. AlertHub + push notifier (delivery sinks)
6. AlertPolicy (duplicate window, daily cap, cooldown)
7. AlertEngine (user and global cycles)
8. OutcomeEvaluator (win/loss resolution)
9. AlertService (periodic loops)
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from alertbot.ai.reviewer import AnthropicReviewer
from alertbot.ai.validator import SignalValidator
from alertbot.config import AppSettings
from alertbot.data.database import AlertDatabase
from alertbot.data.store import AlertStore
from alertbot.engine.alert_engine import AlertEngine
from alertbot.engine.outcomes import OutcomeEvaluator
from alertbot.engine.policy import AlertPolicy
from alertbot.engine.snapshots import SnapshotBuilder
from alertbot.logging import get_logger, setup_logging
from alertbot.market.finnhub_client import FinnhubClient
from alertbot.notify.hub import AlertHub
from alertbot.notify.push import NullPushNotifier
from alertbot.service import AlertService


async def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all components from settings.

    Connects the database so optional-table capabilities can be resolved
    once here. Does NOT call market_client.connect(); that happens in the
    lifespan (server mode) or run() (headless mode).

    Args:
        settings: Application-wide settings.

    Returns:
        Dict mapping component names to instances.
    """
    logger = get_logger("alertbot.main")

    # 1. Persistence
    database = AlertDatabase(settings.database.path)
    await database.connect()
    store = AlertStore(database)
    capabilities = await store.detect_capabilities()

    # 2. Market data
    market_client = FinnhubClient(settings.market)
    if not settings.market.api_key.get_secret_value():
        logger.warning(
            "no_market_key_configured",
            note="Provider calls will fail until FINNHUB_API_KEY is set.",
        )

    # 3. Snapshots
    snapshots = SnapshotBuilder(
        market_client,
        lookback_days=settings.market.candle_lookback_days,
        synthetic_fallback=settings.alerts.synthetic_fallback_enabled,
    )

    # 4. AI review
    reviewer = AnthropicReviewer(settings.ai)
    validator = SignalValidator(
        reviewer,
        enabled=settings.ai.enabled,
        configured=reviewer.configured,
        timeout_seconds=settings.ai.timeout_seconds,
    )

    # 5. Sinks
    hub = AlertHub()
    push = NullPushNotifier()

    # 6-9. Policy, engine, evaluator, service
    policy = AlertPolicy(store, capabilities, settings.alerts)
    engine = AlertEngine(
        store=store,
        snapshots=snapshots,
        validator=validator,
        policy=policy,
        settings=settings.alerts,
        hub=hub,
        push=push,
    )
    evaluator = OutcomeEvaluator(
        store,
        snapshots,
        move_threshold_pct=settings.outcome.move_threshold_pct,
    )
    service = AlertService(engine, evaluator, settings.service)

    return {
        "database": database,
        "store": store,
        "market_client": market_client,
        "reviewer": reviewer,
        "validator": validator,
        "hub": hub,
        "push": push,
        "policy": policy,
        "engine": engine,
        "evaluator": evaluator,
        "service": service,
    }


async def _shutdown_components(components: dict[str, Any]) -> None:
    await components["market_client"].close()
    await components["reviewer"].close()
    await components["database"].close()


def _setup_signal_handlers(service: AlertService) -> None:
    """Register SIGINT/SIGTERM for graceful shutdown.

    Must be called after the asyncio event loop is running.
    """
    logger = get_logger("alertbot.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        asyncio.create_task(service.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage component lifecycle within the FastAPI application.

    On startup: connects the market client and starts the service loops
    as a background task.

    On shutdown: stops the service, cancels its task, and closes the
    market client, reviewer and database.
    """
    logger = get_logger("alertbot.main")
    components = app.state.components

    app.state.service = components["service"]
    app.state.market_client = components["market_client"]

    await components["market_client"].connect()
    service_task = asyncio.create_task(components["service"].start())

    logger.info("lifespan_started")

    yield

    await components["service"].stop()
    service_task.cancel()
    try:
        await service_task
    except asyncio.CancelledError:
        pass

    await _shutdown_components(components)
    logger.info("alert_engine_stopped")


async def run() -> None:
    """Run the alert engine.

    With SERVER_ENABLED=true (default) the WebSocket server and the service
    loops share one event loop via uvicorn; the lifespan manages startup
    and shutdown. Otherwise the loops run headless.
    """
    settings = AppSettings()

    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("alertbot.main")

    components = await _build_components(settings)

    if settings.server.enabled:
        from alertbot.app import create_app

        app = create_app(hub=components["hub"], lifespan=lifespan)
        app.state.settings = settings
        app.state.components = components

        logger.info(
            "starting_with_server",
            host=settings.server.host,
            port=settings.server.port,
        )

        config = uvicorn.Config(
            app,
            host=settings.server.host,
            port=settings.server.port,
            log_level="warning",
        )
        server = uvicorn.Server(config)
        await server.serve()
    else:
        _setup_signal_handlers(components["service"])

        logger.info(
            "starting_without_server",
            scan_interval=settings.service.scan_interval,
            ai_enabled=settings.ai.enabled,
        )

        try:
            await components["market_client"].connect()
            await components["service"].start()
        finally:
            await _shutdown_components(components)
            logger.info("alert_engine_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
