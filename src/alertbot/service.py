"""Background service running alert and outcome cycles on fixed intervals.

Two loops share the process:
  - scan loop: AlertEngine.run_global_cycle every ``scan_interval`` seconds
  - outcome loop: OutcomeEvaluator.run_outcome_evaluation_cycle every
    ``outcome_interval`` seconds
Each cycle runs under a lock so a slow cycle is never overlapped by the next.
"""

from __future__ import annotations

import asyncio

from alertbot.config import ServiceSettings
from alertbot.engine.alert_engine import AlertEngine, GlobalCycleResult
from alertbot.engine.outcomes import OutcomeCycleResult, OutcomeEvaluator
from alertbot.logging import get_logger

logger = get_logger(__name__)

_ERROR_BACKOFF_SECONDS = 10


class AlertService:
    """Periodic driver for the alert engine and outcome evaluator.

    Args:
        engine: Alert engine.
        evaluator: Outcome evaluator.
        settings: Loop intervals.
    """

    def __init__(
        self,
        engine: AlertEngine,
        evaluator: OutcomeEvaluator,
        settings: ServiceSettings,
    ) -> None:
        self._engine = engine
        self._evaluator = evaluator
        self._settings = settings
        self._running = False
        self._stopped = asyncio.Event()
        self._scan_lock = asyncio.Lock()
        self._outcome_lock = asyncio.Lock()
        self._last_scan: GlobalCycleResult | None = None
        self._last_outcomes: OutcomeCycleResult | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Run both loops until stop() is called or the task is cancelled."""
        logger.info(
            "alert_service_starting",
            scan_interval=self._settings.scan_interval,
            outcome_interval=self._settings.outcome_interval,
        )
        self._running = True
        self._stopped.clear()
        try:
            await asyncio.gather(self._scan_loop(), self._outcome_loop())
        finally:
            self._running = False
            logger.info("alert_service_stopped")

    async def stop(self) -> None:
        """Signal both loops to exit after their current iteration."""
        logger.info("alert_service_stopping")
        self._running = False
        self._stopped.set()

    async def run_scan_once(self) -> GlobalCycleResult:
        async with self._scan_lock:
            self._last_scan = await self._engine.run_global_cycle()
            return self._last_scan

    async def run_outcomes_once(self) -> OutcomeCycleResult:
        async with self._outcome_lock:
            self._last_outcomes = await self._evaluator.run_outcome_evaluation_cycle()
            return self._last_outcomes

    def get_status(self) -> dict:
        """Return current service status for the health endpoint."""
        return {
            "running": self._running,
            "last_scan": (
                {
                    "users_scanned": self._last_scan.users_scanned,
                    "alerts_created": self._last_scan.alerts_created,
                    "failed_users": self._last_scan.failed_users,
                    "metrics": self._last_scan.metrics.to_dict(),
                }
                if self._last_scan is not None
                else None
            ),
            "last_outcomes": (
                self._last_outcomes.to_dict() if self._last_outcomes is not None else None
            ),
        }

    async def _sleep(self, seconds: float) -> None:
        """Sleep that returns early once stop() is called."""
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=seconds)
        except TimeoutError:
            pass

    async def _scan_loop(self) -> None:
        while self._running:
            try:
                await self.run_scan_once()
                await self._sleep(self._settings.scan_interval)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("scan_cycle_error", error=str(e), exc_info=True)
                await self._sleep(_ERROR_BACKOFF_SECONDS)

    async def _outcome_loop(self) -> None:
        while self._running:
            try:
                await self.run_outcomes_once()
                await self._sleep(self._settings.outcome_interval)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("outcome_cycle_error", error=str(e), exc_info=True)
                await self._sleep(_ERROR_BACKOFF_SECONDS)
