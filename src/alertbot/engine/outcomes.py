"""Outcome evaluation for open opportunity/bearish alerts.

Opportunity alerts win at or above the take-profit and lose at or below the
stop. Without a stored level, a move of ``move_threshold_pct`` from entry
decides instead. Bearish alerts mirror both rules. Stop-loss notices are
never evaluated.

Prices come from live provider quotes only, one fetch per symbol per run.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass

from alertbot.data.store import AlertStore
from alertbot.engine.snapshots import SnapshotBuilder
from alertbot.logging import get_logger
from alertbot.models import AlertType, Outcome

logger = get_logger(__name__)


def classify_outcome(
    alert_type: AlertType,
    entry: float,
    price: float,
    stop_loss: float | None,
    take_profit: float | None,
    move_threshold_pct: float = 5.0,
) -> Outcome:
    """Decide win/loss/open for one alert at ``price``."""
    if alert_type is AlertType.STOP_LOSS or not entry:
        return Outcome.OPEN

    move = (price - entry) / entry * 100

    if alert_type is AlertType.BEARISH:
        if take_profit is not None:
            if price <= take_profit:
                return Outcome.WIN
        elif move <= -move_threshold_pct:
            return Outcome.WIN
        if stop_loss is not None:
            if price >= stop_loss:
                return Outcome.LOSS
        elif move >= move_threshold_pct:
            return Outcome.LOSS
        return Outcome.OPEN

    if take_profit is not None:
        if price >= take_profit:
            return Outcome.WIN
    elif move >= move_threshold_pct:
        return Outcome.WIN
    if stop_loss is not None:
        if price <= stop_loss:
            return Outcome.LOSS
    elif move <= -move_threshold_pct:
        return Outcome.LOSS
    return Outcome.OPEN


@dataclass
class OutcomeCycleResult:
    scanned: int = 0
    updated: int = 0
    wins: int = 0
    losses: int = 0
    still_open: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return {
            "scanned": self.scanned,
            "updated": self.updated,
            "wins": self.wins,
            "losses": self.losses,
            "open": self.still_open,
            "errors": self.errors,
        }


class OutcomeEvaluator:
    """Resolves open alerts against live prices.

    Args:
        store: Alert store.
        snapshots: Snapshot builder used for live quotes.
        move_threshold_pct: Move that decides an alert with no stored level.
        clock: Wall-clock source in Unix seconds.
    """

    def __init__(
        self,
        store: AlertStore,
        snapshots: SnapshotBuilder,
        move_threshold_pct: float = 5.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._snapshots = snapshots
        self._move_threshold_pct = move_threshold_pct
        self._clock = clock

    async def run_outcome_evaluation_cycle(self) -> OutcomeCycleResult:
        """Evaluate every open alert once. Per-symbol price errors are counted, not raised."""
        result = OutcomeCycleResult()
        alerts = await self._store.get_open_alerts()
        result.scanned = len(alerts)

        prices: dict[tuple[str, str | None], float | None] = {}
        for alert in alerts:
            key = (alert.symbol, alert.category)
            if key not in prices:
                prices[key] = await self._fetch_price(alert.symbol, alert.category, result)
            price = prices[key]
            if price is None:
                continue

            outcome = classify_outcome(
                alert.type,
                alert.price_at_alert,
                price,
                alert.stop_loss,
                alert.take_profit,
                self._move_threshold_pct,
            )
            if outcome is Outcome.OPEN:
                result.still_open += 1
                continue

            if await self._store.resolve_outcome(alert.id, outcome, price, self._clock()):
                result.updated += 1
                if outcome is Outcome.WIN:
                    result.wins += 1
                else:
                    result.losses += 1
                logger.info(
                    "alert_resolved",
                    alert_id=alert.id,
                    symbol=alert.symbol,
                    outcome=outcome.value,
                    price=price,
                )

        logger.info("outcome_cycle_complete", **result.to_dict())
        return result

    async def _fetch_price(
        self, symbol: str, category: str | None, result: OutcomeCycleResult
    ) -> float | None:
        try:
            price = await self._snapshots.live_price(symbol, category)
        except Exception as e:
            result.errors += 1
            logger.warning("outcome_price_failed", symbol=symbol, error=str(e))
            return None
        if price is None:
            result.errors += 1
            logger.warning("outcome_price_missing", symbol=symbol)
        return price
