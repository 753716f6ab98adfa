"""Alert engine: scan users' symbols and turn confluence into alerts.

Each user cycle:
  1. SNAPSHOT: quote + daily candles -> indicators (override, provider,
     or labelled synthetic fallback)
  2. SCORE: confluence -> candidate, HOLD discarded
  3. POLICY: duplicate window, daily cap, rejection cooldown
  4. REVIEW: optional AI verdict (rejections feed the cooldown)
  5. DELIVER: persist, bump daily counter, broadcast, push
Separately, every active position is checked against its adaptive stop.
Stop-loss alerts skip AI review, the cooldown and the daily cap.

A failing symbol is logged and counted; it never aborts the user's cycle.
A failing user is logged and counted; it never aborts the global cycle.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field, fields

import structlog

from alertbot.ai.models import ReviewContext, ValidationMode
from alertbot.ai.validator import SignalValidator
from alertbot.config import AlertSettings
from alertbot.data.store import AlertStore
from alertbot.engine.policy import AlertPolicy
from alertbot.engine.snapshots import AssetSnapshot, SnapshotBuilder
from alertbot.exceptions import MissingApiKeyError
from alertbot.logging import get_logger
from alertbot.models import (
    Alert,
    AlertCandidate,
    AlertType,
    Confidence,
    Position,
    Recommendation,
    WatchlistItem,
)
from alertbot.notify.hub import AlertHub
from alertbot.notify.push import NullPushNotifier, PushNotifier
from alertbot.scoring.confluence import calculate_confluence
from alertbot.scoring.models import ConfluenceConfig, merge_config
from alertbot.scoring.stops import compute_adaptive_stops

logger = get_logger(__name__)


@dataclass
class CycleOptions:
    """Per-run overrides. Any override set here replaces the store/provider read."""

    config_override: dict | None = None
    watchlist_override: list[WatchlistItem] | None = None
    positions_override: list[Position] | None = None
    snapshots_override: dict[str, AssetSnapshot] | None = None
    news_override: dict[str, list[dict]] | None = None
    fundamentals_override: dict[str, dict] | None = None
    categories: list[str] | None = None
    include_stop_loss: bool = True
    discovery_symbols: list[str] | None = None
    now: float | None = None


@dataclass
class CycleMetrics:
    """Counters for one or more user cycles."""

    watchlist_scanned: int = 0
    positions_scanned: int = 0
    candidates: int = 0
    duplicates_skipped: int = 0
    daily_cap_skipped: int = 0
    cooldown_skipped: int = 0
    ai_rejected: int = 0
    ai_validated: int = 0
    ai_fallback: int = 0
    stop_loss_alerts: int = 0
    symbol_errors: int = 0
    synthetic_snapshots: int = 0

    def merge(self, other: CycleMetrics) -> None:
        for f in fields(self):
            setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class UserCycleResult:
    user_id: int
    alerts: list[Alert] = field(default_factory=list)
    metrics: CycleMetrics = field(default_factory=CycleMetrics)

    @property
    def alerts_created(self) -> int:
        return len(self.alerts)


@dataclass
class GlobalCycleResult:
    users_scanned: int = 0
    alerts_created: int = 0
    failed_users: int = 0
    metrics: CycleMetrics = field(default_factory=CycleMetrics)
    results: list[UserCycleResult] = field(default_factory=list)


class AlertEngine:
    """Runs alert cycles for one user or every user.

    Args:
        store: Alert store for users, watchlists, positions and alerts.
        snapshots: Snapshot builder over the market data provider.
        validator: AI validation adapter.
        policy: Duplicate/cap/cooldown gatekeeper.
        settings: Alert settings (watchlist limit, default daily cap,
            discovery symbols, user concurrency).
        hub: Live WebSocket hub, or None when the server is disabled.
        push: Push notifier. Defaults to NullPushNotifier.
        clock: Wall-clock source in Unix seconds.
    """

    def __init__(
        self,
        store: AlertStore,
        snapshots: SnapshotBuilder,
        validator: SignalValidator,
        policy: AlertPolicy,
        settings: AlertSettings,
        hub: AlertHub | None = None,
        push: PushNotifier | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._snapshots = snapshots
        self._validator = validator
        self._policy = policy
        self._settings = settings
        self._hub = hub
        self._push = push or NullPushNotifier()
        self._clock = clock

    # ──────────────────────────────────────────────
    # Cycles
    # ──────────────────────────────────────────────

    async def run_user_cycle(
        self,
        user_id: int,
        options: CycleOptions | None = None,
    ) -> UserCycleResult:
        """Scan one user's watchlist and positions.

        Always returns a result with counts, even when every symbol fails.
        """
        options = options or CycleOptions()
        with structlog.contextvars.bound_contextvars(user_id=user_id):
            return await self._user_cycle(user_id, options)

    async def run_global_cycle(self, options: CycleOptions | None = None) -> GlobalCycleResult:
        """Run a user cycle for every user, ``user_concurrency`` at a time."""
        options = options or CycleOptions()
        user_ids = await self._store.list_user_ids()
        semaphore = asyncio.Semaphore(max(1, self._settings.user_concurrency))

        async def _run_one(user_id: int) -> UserCycleResult | None:
            async with semaphore:
                try:
                    return await self.run_user_cycle(user_id, options)
                except Exception as e:
                    logger.error(
                        "user_cycle_failed",
                        user_id=user_id,
                        error=str(e),
                        exc_info=True,
                    )
                    return None

        outcomes = await asyncio.gather(*(_run_one(uid) for uid in user_ids))

        result = GlobalCycleResult(users_scanned=len(user_ids))
        for outcome in outcomes:
            if outcome is None:
                result.failed_users += 1
                continue
            result.results.append(outcome)
            result.alerts_created += outcome.alerts_created
            result.metrics.merge(outcome.metrics)

        logger.info(
            "global_cycle_complete",
            users=result.users_scanned,
            alerts=result.alerts_created,
            failed_users=result.failed_users,
        )
        return result

    async def _user_cycle(self, user_id: int, options: CycleOptions) -> UserCycleResult:
        result = UserCycleResult(user_id=user_id)
        metrics = result.metrics
        now = options.now if options.now is not None else self._clock()

        config_row = (
            options.config_override
            if options.config_override is not None
            else await self._store.get_user_config(user_id)
        )
        config = merge_config(config_row)
        items = await self._scan_items(user_id, options)
        positions = await self._active_positions(user_id, options)
        metrics.watchlist_scanned = len(items)
        metrics.positions_scanned = len(positions)

        snapshots: dict[str, AssetSnapshot] = {}

        for item in items:
            snapshot = await self._load_snapshot(item.symbol, item.name, item.category, options, metrics)
            if snapshot is None:
                continue
            snapshots[item.symbol] = snapshot
            try:
                alert = await self._process_signal(user_id, snapshot, config, options, metrics, now)
            except Exception as e:
                metrics.symbol_errors += 1
                logger.warning("signal_processing_failed", symbol=item.symbol, error=str(e), exc_info=True)
                continue
            if alert is not None:
                result.alerts.append(alert)

        for position in positions:
            symbol = position.symbol.upper()
            snapshot = snapshots.get(symbol)
            if snapshot is None:
                snapshot = await self._load_snapshot(symbol, position.name, position.category, options, metrics)
                if snapshot is None:
                    continue
                snapshots[symbol] = snapshot
            try:
                alert = await self._process_stop_loss(user_id, position, snapshot, metrics, now)
            except Exception as e:
                metrics.symbol_errors += 1
                logger.warning("stop_loss_check_failed", symbol=symbol, error=str(e), exc_info=True)
                continue
            if alert is not None:
                result.alerts.append(alert)

        logger.info("user_cycle_complete", alerts=result.alerts_created, **metrics.to_dict())
        return result

    # ──────────────────────────────────────────────
    # Inputs
    # ──────────────────────────────────────────────

    async def _scan_items(self, user_id: int, options: CycleOptions) -> list[WatchlistItem]:
        """Watchlist (optionally filtered by category) plus discovery symbols, deduplicated."""
        watchlist = (
            options.watchlist_override
            if options.watchlist_override is not None
            else await self._store.get_watchlist(user_id, self._settings.watchlist_limit)
        )
        discovery = (
            options.discovery_symbols
            if options.discovery_symbols is not None
            else self._settings.discovery_symbols
        )
        candidates = [*watchlist, *(WatchlistItem(symbol=s) for s in discovery)]

        wanted = {c.lower() for c in options.categories or [] if c}
        items: list[WatchlistItem] = []
        seen: set[str] = set()
        for item in candidates:
            symbol = (item.symbol or "").strip().upper()
            if not symbol or symbol in seen:
                continue
            if wanted and (item.category or "").lower() not in wanted:
                continue
            seen.add(symbol)
            items.append(WatchlistItem(symbol=symbol, name=item.name, category=item.category))
        return items

    async def _active_positions(self, user_id: int, options: CycleOptions) -> list[Position]:
        if not options.include_stop_loss:
            return []
        if options.positions_override is not None:
            return list(options.positions_override)
        return await self._store.get_active_positions(user_id)

    async def _load_snapshot(
        self,
        symbol: str,
        name: str | None,
        category: str | None,
        options: CycleOptions,
        metrics: CycleMetrics,
    ) -> AssetSnapshot | None:
        """Override or provider snapshot. Provider failures count as symbol errors."""
        overrides = options.snapshots_override or {}
        snapshot = overrides.get(symbol)
        if snapshot is None:
            try:
                snapshot = await self._snapshots.build(symbol, name=name, category=category)
            except MissingApiKeyError:
                raise
            except Exception as e:
                metrics.symbol_errors += 1
                logger.warning("symbol_skipped", symbol=symbol, error=str(e))
                return None
        if snapshot is None:
            logger.debug("symbol_no_data", symbol=symbol)
            return None

        if name:
            snapshot.name = name
        if category:
            snapshot.category = category
        if snapshot.is_synthetic:
            metrics.synthetic_snapshots += 1
        return snapshot

    async def _review_context(self, user_id: int, symbol: str, options: CycleOptions) -> ReviewContext:
        if not self._validator.active:
            return ReviewContext()
        news = (options.news_override or {}).get(symbol, [])
        fundamentals = (options.fundamentals_override or {}).get(symbol, {})
        previous = await self._store.get_recent_alerts(user_id, symbol)
        return ReviewContext(news=news, fundamentals=fundamentals, previous_alerts=previous)

    # ──────────────────────────────────────────────
    # Signal and stop-loss paths
    # ──────────────────────────────────────────────

    async def _process_signal(
        self,
        user_id: int,
        snapshot: AssetSnapshot,
        config: ConfluenceConfig,
        options: CycleOptions,
        metrics: CycleMetrics,
        now: float,
    ) -> Alert | None:
        confluence = calculate_confluence(snapshot.indicators, snapshot.change_percent, config)
        alert_type = AlertType.from_direction(confluence.direction)
        if alert_type is None:
            return None

        stops = compute_adaptive_stops(
            snapshot.price,
            snapshot.indicators.atr,
            snapshot.indicators.rsi,
            confluence.direction,
        )
        if not stops.usable:
            logger.debug("signal_without_stop", symbol=snapshot.symbol)
            return None

        candidate = AlertCandidate(
            user_id=user_id,
            symbol=snapshot.symbol,
            name=snapshot.name,
            type=alert_type,
            recommendation=confluence.recommendation,
            confidence=confluence.confidence,
            price_at_alert=snapshot.price,
            stop_loss=stops.stop_loss,
            take_profit=stops.take_profit,
            confluence_bull=confluence.bull,
            confluence_bear=confluence.bear,
            signals=[s.to_dict() for s in confluence.signals],
            snapshot=snapshot.to_dict(),
            category=snapshot.category,
        )
        metrics.candidates += 1

        async with self._policy.lock_for(user_id, candidate.symbol):
            if await self._policy.is_duplicate(candidate, now):
                metrics.duplicates_skipped += 1
                return None

            cap = (
                config.max_alerts_per_day
                if config.max_alerts_per_day is not None
                else self._settings.max_alerts_per_day
            )
            if await self._policy.daily_cap_reached(user_id, cap, now):
                metrics.daily_cap_skipped += 1
                logger.info("daily_cap_reached", symbol=candidate.symbol, cap=cap)
                return None

            cooldown = await self._policy.active_cooldown(candidate, now)
            if cooldown is not None:
                metrics.cooldown_skipped += 1
                logger.info(
                    "cooldown_active",
                    symbol=candidate.symbol,
                    direction=candidate.direction.value,
                    cooldown_until=cooldown.cooldown_until,
                )
                return None

            context = await self._review_context(user_id, candidate.symbol, options)
            verdict = await self._validator.validate_signal(candidate, config, context)
            await self._policy.record_verdict(candidate, verdict, now)

            if verdict.mode is ValidationMode.REJECTED:
                metrics.ai_rejected += 1
                logger.info("ai_rejected", symbol=candidate.symbol, reasoning=verdict.reasoning)
                return None
            if verdict.mode is ValidationMode.VALIDATED:
                metrics.ai_validated += 1
            else:
                metrics.ai_fallback += 1

            candidate.confidence = verdict.confidence
            candidate.stop_loss = verdict.adjusted_stop_loss
            candidate.take_profit = verdict.adjusted_target
            alert = await self._policy.commit(candidate, now, verdict=verdict)

        await self._deliver(alert)
        logger.info(
            "alert_created",
            alert_id=alert.id,
            symbol=alert.symbol,
            type=alert.type.value,
            recommendation=alert.recommendation,
            ai_mode=alert.ai_mode,
            synthetic=snapshot.is_synthetic,
        )
        return alert

    async def _process_stop_loss(
        self,
        user_id: int,
        position: Position,
        snapshot: AssetSnapshot,
        metrics: CycleMetrics,
        now: float,
    ) -> Alert | None:
        """Raise a stop-loss alert when price has fallen through the position's stop."""
        if snapshot.is_synthetic:
            logger.debug("stop_loss_skipped_synthetic", symbol=snapshot.symbol)
            return None

        stops = compute_adaptive_stops(
            position.buy_price, snapshot.indicators.atr, snapshot.indicators.rsi
        )
        if not stops.usable or snapshot.price > stops.stop_loss:  # type: ignore[operator]
            return None

        stop = stops.stop_loss
        assert stop is not None
        drawdown = (snapshot.price - position.buy_price) / position.buy_price * 100
        candidate = AlertCandidate(
            user_id=user_id,
            symbol=snapshot.symbol,
            name=position.name or snapshot.name,
            type=AlertType.STOP_LOSS,
            recommendation=Recommendation.STOP_LOSS,
            confidence=Confidence.HIGH,
            price_at_alert=snapshot.price,
            stop_loss=stop,
            take_profit=None,
            signals=[{"indicator": "ATR", "type": "risk", "detail": f"Price hit stop ({stop:.2f})"}],
            snapshot={
                "drawdown": drawdown,
                "buyPrice": position.buy_price,
                "quantity": position.quantity,
                "positionId": position.id,
                "source": snapshot.source.value,
            },
            category=position.category or snapshot.category,
        )

        async with self._policy.lock_for(user_id, candidate.symbol):
            if await self._policy.is_duplicate(candidate, now):
                metrics.duplicates_skipped += 1
                return None
            alert = await self._policy.commit(candidate, now, count_toward_cap=False)

        metrics.stop_loss_alerts += 1
        await self._deliver(alert)
        logger.warning(
            "stop_loss_alert_created",
            alert_id=alert.id,
            symbol=alert.symbol,
            price=snapshot.price,
            stop=stop,
            drawdown=round(drawdown, 2),
        )
        return alert

    async def _deliver(self, alert: Alert) -> None:
        """Broadcast and push. Delivery failures only affect ``notified``."""
        payload = alert.to_payload()
        if self._hub is not None:
            try:
                await self._hub.broadcast_alert(payload)
            except Exception as e:
                logger.warning("alert_broadcast_failed", alert_id=alert.id, error=str(e))

        sent = 0
        try:
            push_result = await self._push.notify_alert(alert.user_id, payload)
            sent = push_result.sent
        except Exception as e:
            logger.warning("push_failed", alert_id=alert.id, error=str(e))

        alert.notified = sent > 0
        try:
            await self._store.set_notified(alert.id, alert.notified)
        except Exception as e:
            logger.warning("alert_notified_flag_failed", alert_id=alert.id, error=str(e))
