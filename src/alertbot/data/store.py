"""Typed SQLite read/write abstraction for alerts and alert policy state.

Provides AlertStore with typed methods for the queries the alert engine and
outcome evaluator issue. All SQL is isolated behind this interface.

Cooldown and daily-count writes are single INSERT ... ON CONFLICT DO UPDATE
statements so concurrent cycles converge instead of double counting.
"""

import json
import time
from dataclasses import dataclass

import aiosqlite

from alertbot.data.database import AlertDatabase
from alertbot.logging import get_logger
from alertbot.models import (
    Alert,
    AlertCandidate,
    AlertType,
    CooldownRecord,
    Direction,
    Outcome,
    Position,
    WatchlistItem,
)

logger = get_logger(__name__)

_ALERT_COLUMNS = (
    "id, user_id, symbol, name, category, type, recommendation, confidence, "
    "price_at_alert, stop_loss, take_profit, created_at, notified, "
    "outcome, outcome_price, outcome_date, ai_mode"
)


@dataclass(frozen=True)
class StoreCapabilities:
    """Optional tables present in the connected database."""

    cooldown_tracking_available: bool
    daily_count_tracking_available: bool


def _row_to_alert(row: aiosqlite.Row) -> Alert:
    return Alert(
        id=row["id"],
        user_id=row["user_id"],
        symbol=row["symbol"],
        name=row["name"],
        category=row["category"],
        type=AlertType(row["type"]),
        recommendation=row["recommendation"],
        confidence=row["confidence"],
        price_at_alert=row["price_at_alert"],
        stop_loss=row["stop_loss"],
        take_profit=row["take_profit"],
        created_at=row["created_at"],
        notified=bool(row["notified"]),
        outcome=Outcome(row["outcome"]),
        outcome_price=row["outcome_price"],
        outcome_date=row["outcome_date"],
        ai_mode=row["ai_mode"],
    )


class AlertStore:
    """Async SQLite store for users, alerts, cooldowns and daily counts.

    Wraps AlertDatabase with typed read/write methods. All SQL access
    goes through self._database.db (the aiosqlite Connection).

    Usage:
        async with AlertDatabase("data/alerts.db") as database:
            store = AlertStore(database)
            capabilities = await store.detect_capabilities()
    """

    def __init__(self, database: AlertDatabase) -> None:
        self._database = database

    async def detect_capabilities(self) -> StoreCapabilities:
        """Check once which optional policy tables exist."""
        cursor = await self._database.db.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' "
            "AND name IN ('alert_cooldowns', 'daily_alert_counts')"
        )
        names = {row[0] for row in await cursor.fetchall()}
        capabilities = StoreCapabilities(
            cooldown_tracking_available="alert_cooldowns" in names,
            daily_count_tracking_available="daily_alert_counts" in names,
        )
        if not (
            capabilities.cooldown_tracking_available
            and capabilities.daily_count_tracking_available
        ):
            logger.warning(
                "alert_store_degraded",
                cooldown_tracking=capabilities.cooldown_tracking_available,
                daily_count_tracking=capabilities.daily_count_tracking_available,
            )
        return capabilities

    # ──────────────────────────────────────────────
    # Users, configs, watchlists, positions
    # ──────────────────────────────────────────────

    async def add_user(self, user_id: int, email: str | None = None) -> None:
        await self._database.db.execute(
            "INSERT OR IGNORE INTO users (id, email, created_at) VALUES (?, ?, ?)",
            (user_id, email, time.time()),
        )
        await self._database.db.commit()

    async def upsert_user_config(self, user_id: int, config: dict) -> None:
        """Insert or replace a user's scoring config row.

        Keys follow the table columns: sectors, rsi_os, rsi_ob, vol_thresh,
        min_confluence, horizon, risk_profile, max_alerts_per_day.
        """
        sectors = config.get("sectors")
        await self._database.db.execute(
            "INSERT OR REPLACE INTO user_configs "
            "(user_id, sectors, rsi_os, rsi_ob, vol_thresh, min_confluence, "
            "horizon, risk_profile, max_alerts_per_day) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                user_id,
                json.dumps(sectors) if sectors is not None else None,
                config.get("rsi_os"),
                config.get("rsi_ob"),
                config.get("vol_thresh"),
                config.get("min_confluence"),
                config.get("horizon"),
                config.get("risk_profile"),
                config.get("max_alerts_per_day"),
            ),
        )
        await self._database.db.commit()

    async def add_watchlist_item(
        self,
        user_id: int,
        symbol: str,
        name: str | None = None,
        category: str | None = None,
    ) -> None:
        await self._database.db.execute(
            "INSERT OR IGNORE INTO watchlist_items "
            "(user_id, symbol, name, category, added_at) VALUES (?, ?, ?, ?, ?)",
            (user_id, symbol.upper(), name, category, time.time()),
        )
        await self._database.db.commit()

    async def add_position(
        self,
        user_id: int,
        symbol: str,
        buy_price: float,
        quantity: float,
        name: str | None = None,
        category: str | None = None,
    ) -> int:
        """Insert an open position and return its id."""
        cursor = await self._database.db.execute(
            "INSERT INTO positions (user_id, symbol, name, category, buy_price, quantity) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (user_id, symbol.upper(), name, category, buy_price, quantity),
        )
        await self._database.db.commit()
        return cursor.lastrowid  # type: ignore[return-value]

    async def list_user_ids(self) -> list[int]:
        cursor = await self._database.db.execute(
            "SELECT id FROM users ORDER BY created_at ASC, id ASC"
        )
        return [row[0] for row in await cursor.fetchall()]

    async def get_user_config(self, user_id: int) -> dict | None:
        """Raw config row for ``merge_config``, or None if the user has none."""
        cursor = await self._database.db.execute(
            "SELECT sectors, rsi_os, rsi_ob, vol_thresh, min_confluence, "
            "horizon, risk_profile, max_alerts_per_day "
            "FROM user_configs WHERE user_id = ?",
            (user_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        config = dict(row)
        if config.get("sectors"):
            config["sectors"] = json.loads(config["sectors"])
        return config

    async def get_watchlist(self, user_id: int, limit: int = 50) -> list[WatchlistItem]:
        """Watchlist items, oldest first, capped at ``limit``."""
        cursor = await self._database.db.execute(
            "SELECT symbol, name, category FROM watchlist_items "
            "WHERE user_id = ? ORDER BY added_at ASC, symbol ASC LIMIT ?",
            (user_id, limit),
        )
        rows = await cursor.fetchall()
        return [
            WatchlistItem(symbol=row["symbol"], name=row["name"], category=row["category"])
            for row in rows
        ]

    async def get_active_positions(self, user_id: int) -> list[Position]:
        """Positions that are neither sold nor deleted."""
        cursor = await self._database.db.execute(
            "SELECT id, symbol, name, category, buy_price, quantity FROM positions "
            "WHERE user_id = ? AND sell_date IS NULL AND deleted_at IS NULL "
            "ORDER BY id ASC",
            (user_id,),
        )
        rows = await cursor.fetchall()
        return [
            Position(
                id=row["id"],
                symbol=row["symbol"],
                buy_price=row["buy_price"],
                quantity=row["quantity"],
                name=row["name"],
                category=row["category"],
            )
            for row in rows
        ]

    # ──────────────────────────────────────────────
    # Alerts
    # ──────────────────────────────────────────────

    async def has_recent_duplicate(
        self,
        user_id: int,
        symbol: str,
        alert_type: AlertType,
        since: float,
    ) -> bool:
        """True if an alert of the same (user, symbol, type) exists after ``since``."""
        cursor = await self._database.db.execute(
            "SELECT 1 FROM alerts WHERE user_id = ? AND symbol = ? AND type = ? "
            "AND created_at >= ? LIMIT 1",
            (user_id, symbol, alert_type.value, since),
        )
        return await cursor.fetchone() is not None

    async def insert_alert(
        self,
        candidate: AlertCandidate,
        created_at: float,
        ai_mode: str | None = None,
        ai_reasoning: str | None = None,
    ) -> Alert:
        """Persist a candidate as a new open alert."""
        cursor = await self._database.db.execute(
            "INSERT INTO alerts "
            "(user_id, symbol, name, category, type, recommendation, confidence, "
            "confluence_bull, confluence_bear, signals, price_at_alert, stop_loss, "
            "take_profit, snapshot, ai_mode, ai_reasoning, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                candidate.user_id,
                candidate.symbol,
                candidate.name,
                candidate.category,
                candidate.type.value,
                candidate.recommendation.value,
                candidate.confidence.value,
                candidate.confluence_bull,
                candidate.confluence_bear,
                json.dumps(candidate.signals, default=str),
                candidate.price_at_alert,
                candidate.stop_loss,
                candidate.take_profit,
                json.dumps(candidate.snapshot, default=str),
                ai_mode,
                ai_reasoning,
                created_at,
            ),
        )
        await self._database.db.commit()

        alert = Alert(
            id=cursor.lastrowid,  # type: ignore[arg-type]
            user_id=candidate.user_id,
            symbol=candidate.symbol,
            name=candidate.name,
            category=candidate.category,
            type=candidate.type,
            recommendation=candidate.recommendation.value,
            confidence=candidate.confidence.value,
            price_at_alert=candidate.price_at_alert,
            stop_loss=candidate.stop_loss,
            take_profit=candidate.take_profit,
            created_at=created_at,
            ai_mode=ai_mode,
        )
        logger.debug(
            "alert_inserted",
            alert_id=alert.id,
            user_id=alert.user_id,
            symbol=alert.symbol,
            type=alert.type.value,
        )
        return alert

    async def set_notified(self, alert_id: int, notified: bool) -> None:
        await self._database.db.execute(
            "UPDATE alerts SET notified = ? WHERE id = ?",
            (1 if notified else 0, alert_id),
        )
        await self._database.db.commit()

    async def get_alert(self, alert_id: int) -> Alert | None:
        cursor = await self._database.db.execute(
            f"SELECT {_ALERT_COLUMNS} FROM alerts WHERE id = ?", (alert_id,)
        )
        row = await cursor.fetchone()
        return _row_to_alert(row) if row is not None else None

    async def get_alert_snapshot(self, alert_id: int) -> dict:
        """Decoded snapshot JSON stored with an alert."""
        cursor = await self._database.db.execute(
            "SELECT snapshot FROM alerts WHERE id = ?", (alert_id,)
        )
        row = await cursor.fetchone()
        if row is None or not row[0]:
            return {}
        return json.loads(row[0])

    async def get_open_alerts(self) -> list[Alert]:
        """Open opportunity/bearish alerts. Stop-loss notices never resolve."""
        cursor = await self._database.db.execute(
            f"SELECT {_ALERT_COLUMNS} FROM alerts "
            "WHERE outcome = 'open' AND type IN ('opportunity', 'bearish') "
            "ORDER BY created_at ASC"
        )
        return [_row_to_alert(row) for row in await cursor.fetchall()]

    async def get_recent_alerts(self, user_id: int, symbol: str, limit: int = 5) -> list[dict]:
        """Latest alerts for a (user, symbol), newest first, as reviewer context."""
        cursor = await self._database.db.execute(
            "SELECT type, recommendation, confidence, price_at_alert, outcome, created_at "
            "FROM alerts WHERE user_id = ? AND symbol = ? "
            "ORDER BY created_at DESC LIMIT ?",
            (user_id, symbol, limit),
        )
        return [dict(row) for row in await cursor.fetchall()]

    async def resolve_outcome(
        self,
        alert_id: int,
        outcome: Outcome,
        outcome_price: float,
        outcome_date: float,
    ) -> bool:
        """Close an open alert. Returns False if it was already resolved."""
        cursor = await self._database.db.execute(
            "UPDATE alerts SET outcome = ?, outcome_price = ?, outcome_date = ? "
            "WHERE id = ? AND outcome = 'open'",
            (outcome.value, outcome_price, outcome_date, alert_id),
        )
        await self._database.db.commit()
        return cursor.rowcount == 1

    # ──────────────────────────────────────────────
    # Daily counts
    # ──────────────────────────────────────────────

    async def get_daily_count(self, user_id: int, day: str) -> int:
        cursor = await self._database.db.execute(
            "SELECT count FROM daily_alert_counts WHERE user_id = ? AND day = ?",
            (user_id, day),
        )
        row = await cursor.fetchone()
        return int(row[0]) if row is not None else 0

    async def increment_daily_count(self, user_id: int, day: str) -> int:
        """Atomically bump the (user, day) counter and return the new value."""
        await self._database.db.execute(
            "INSERT INTO daily_alert_counts (user_id, day, count) VALUES (?, ?, 1) "
            "ON CONFLICT(user_id, day) DO UPDATE SET count = daily_alert_counts.count + 1",
            (user_id, day),
        )
        await self._database.db.commit()
        return await self.get_daily_count(user_id, day)

    # ──────────────────────────────────────────────
    # Rejection cooldowns
    # ──────────────────────────────────────────────

    async def get_cooldown(self, symbol: str, direction: Direction) -> CooldownRecord | None:
        cursor = await self._database.db.execute(
            "SELECT rejection_count, cooldown_until FROM alert_cooldowns "
            "WHERE symbol = ? AND direction = ?",
            (symbol, direction.value),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return CooldownRecord(
            symbol=symbol,
            direction=direction,
            rejection_count=row["rejection_count"],
            cooldown_until=row["cooldown_until"],
        )

    async def record_rejection(
        self,
        symbol: str,
        direction: Direction,
        threshold: int,
        cooldown_seconds: float,
        now: float,
    ) -> CooldownRecord:
        """Count one AI rejection; open a block once the count reaches ``threshold``.

        The counter keeps growing past the threshold until a confirmation
        resets it, so a rejection after the block expires re-opens it.
        """
        until = now + cooldown_seconds
        await self._database.db.execute(
            "INSERT INTO alert_cooldowns "
            "(symbol, direction, rejection_count, cooldown_until, updated_at) "
            "VALUES (?, ?, 1, CASE WHEN 1 >= ? THEN ? ELSE NULL END, ?) "
            "ON CONFLICT(symbol, direction) DO UPDATE SET "
            "rejection_count = alert_cooldowns.rejection_count + 1, "
            "cooldown_until = CASE WHEN alert_cooldowns.rejection_count + 1 >= ? "
            "THEN ? ELSE alert_cooldowns.cooldown_until END, "
            "updated_at = excluded.updated_at",
            (symbol, direction.value, threshold, until, now, threshold, until),
        )
        await self._database.db.commit()

        record = await self.get_cooldown(symbol, direction)
        assert record is not None
        if record.is_active(now):
            logger.info(
                "cooldown_opened",
                symbol=symbol,
                direction=direction.value,
                rejections=record.rejection_count,
                cooldown_until=record.cooldown_until,
            )
        return record

    async def reset_rejections(self, symbol: str, direction: Direction, now: float) -> None:
        """Zero the counter and clear any block after a confirmation."""
        await self._database.db.execute(
            "INSERT INTO alert_cooldowns "
            "(symbol, direction, rejection_count, cooldown_until, updated_at) "
            "VALUES (?, ?, 0, NULL, ?) "
            "ON CONFLICT(symbol, direction) DO UPDATE SET "
            "rejection_count = 0, cooldown_until = NULL, updated_at = excluded.updated_at",
            (symbol, direction.value, now),
        )
        await self._database.db.commit()
