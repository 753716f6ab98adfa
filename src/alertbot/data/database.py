"""Async SQLite database manager for alerts and alert policy state.

Uses aiosqlite for non-blocking database operations with WAL mode
for concurrent read/write performance.
"""

import os
from typing import Self

import aiosqlite

from alertbot.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_CREATE_CORE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY,
    email TEXT,
    created_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS user_configs (
    user_id INTEGER PRIMARY KEY,
    sectors TEXT,
    rsi_os REAL,
    rsi_ob REAL,
    vol_thresh REAL,
    min_confluence INTEGER,
    horizon TEXT,
    risk_profile TEXT,
    max_alerts_per_day INTEGER
);

CREATE TABLE IF NOT EXISTS watchlist_items (
    user_id INTEGER NOT NULL,
    symbol TEXT NOT NULL,
    name TEXT,
    category TEXT,
    added_at REAL NOT NULL,
    PRIMARY KEY (user_id, symbol)
);

CREATE TABLE IF NOT EXISTS positions (
    id INTEGER PRIMARY KEY,
    user_id INTEGER NOT NULL,
    symbol TEXT NOT NULL,
    name TEXT,
    category TEXT,
    buy_price REAL NOT NULL,
    quantity REAL NOT NULL,
    sell_date REAL,
    deleted_at REAL
);

CREATE TABLE IF NOT EXISTS alerts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    symbol TEXT NOT NULL,
    name TEXT,
    category TEXT,
    type TEXT NOT NULL,
    recommendation TEXT NOT NULL,
    confidence TEXT NOT NULL,
    confluence_bull INTEGER NOT NULL DEFAULT 0,
    confluence_bear INTEGER NOT NULL DEFAULT 0,
    signals TEXT,
    price_at_alert REAL NOT NULL,
    stop_loss REAL,
    take_profit REAL,
    snapshot TEXT,
    ai_mode TEXT,
    ai_reasoning TEXT,
    notified INTEGER NOT NULL DEFAULT 0,
    outcome TEXT NOT NULL DEFAULT 'open',
    outcome_price REAL,
    outcome_date REAL,
    created_at REAL NOT NULL
);
"""

_CREATE_POLICY_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS alert_cooldowns (
    symbol TEXT NOT NULL,
    direction TEXT NOT NULL,
    rejection_count INTEGER NOT NULL DEFAULT 0,
    cooldown_until REAL,
    updated_at REAL NOT NULL,
    PRIMARY KEY (symbol, direction)
);

CREATE TABLE IF NOT EXISTS daily_alert_counts (
    user_id INTEGER NOT NULL,
    day TEXT NOT NULL,
    count INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (user_id, day)
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_alerts_user_symbol_type_created
    ON alerts(user_id, symbol, type, created_at);

CREATE INDEX IF NOT EXISTS idx_alerts_outcome
    ON alerts(outcome);
"""


class AlertDatabase:
    """Async SQLite connection manager for the alert engine.

    Manages database lifecycle including schema creation, WAL mode
    configuration, and clean resource cleanup.

    Args:
        db_path: File path, or ":memory:" for tests.
        create_policy_tables: Create the cooldown and daily-count tables.
            False reproduces a deployment where those tables were never
            migrated; the store then runs without cooldown enforcement.

    Usage:
        async with AlertDatabase("data/alerts.db") as db:
            store = AlertStore(db)
    """

    def __init__(
        self,
        db_path: str = "data/alerts.db",
        create_policy_tables: bool = True,
    ) -> None:
        self._db_path = db_path
        self._create_policy_tables = create_policy_tables
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open database connection, configure pragmas, and create schema."""
        if self._db_path != ":memory:":
            db_dir = os.path.dirname(self._db_path)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)
        self._connection.row_factory = aiosqlite.Row

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")

        await self._create_tables()
        await self._ensure_schema_version()

        logger.info("alert_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("alert_db_closed", db_path=self._db_path)

    async def _create_tables(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(_CREATE_CORE_TABLES_SQL)
        if self._create_policy_tables:
            await self._connection.executescript(_CREATE_POLICY_TABLES_SQL)
        await self._connection.executescript(_CREATE_INDEXES_SQL)
        await self._connection.commit()

    async def _ensure_schema_version(self) -> None:
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT version FROM schema_version LIMIT 1"
        )
        row = await cursor.fetchone()
        if row is None:
            await self._connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            await self._connection.commit()
            logger.info("schema_version_set", version=SCHEMA_VERSION)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
