"""Shared test fixtures for the alert engine."""

from collections.abc import Callable

import pytest

from alertbot.config import AlertSettings
from alertbot.data.database import AlertDatabase
from alertbot.data.store import AlertStore
from alertbot.engine.snapshots import AssetSnapshot
from alertbot.indicators.models import BollingerBands, IndicatorSnapshot, MacdReading
from alertbot.models import SnapshotSource

#: Fixed wall-clock time used by engine and store tests (2023-11-14 22:13:20 UTC).
NOW = 1_700_000_000.0


class FakeClock:
    """Controllable clock with a sleep that advances time instead of waiting."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def database():
    """Connected in-memory database with every table."""
    db = AlertDatabase(":memory:")
    await db.connect()
    yield db
    await db.close()


@pytest.fixture
async def store(database: AlertDatabase) -> AlertStore:
    return AlertStore(database)


@pytest.fixture
def alert_settings() -> AlertSettings:
    """Alert settings with no discovery symbols and sequential users."""
    return AlertSettings(
        duplicate_window_hours=4.0,
        max_alerts_per_day=10,
        rejection_threshold=3,
        cooldown_hours=24.0,
        discovery_symbols=[],
        user_concurrency=1,
    )


def make_candles(closes: list[float], start: int = 1_600_000_000, spread: float = 1.0) -> dict:
    """Provider-shaped daily candle payload around ``closes``."""
    return {
        "s": "ok",
        "t": [start + i * 86_400 for i in range(len(closes))],
        "o": list(closes),
        "h": [c + spread for c in closes],
        "l": [c - spread for c in closes],
        "c": list(closes),
        "v": [1000.0] * len(closes),
    }


@pytest.fixture
def candles_factory() -> Callable[..., dict]:
    return make_candles


def make_snapshot(
    symbol: str = "AAPL",
    bias: str = "bull",
    price: float = 100.0,
    atr: float | None = 4.0,
    source: SnapshotSource = SnapshotSource.OVERRIDE,
) -> AssetSnapshot:
    """Hand-built snapshot that scores as STRONG BUY, STRONG SELL or HOLD.

    bull: RSI 25 (+2), MACD above signal (+2), positive histogram (+1) -> net 5
    bear: RSI 75 (+2), MACD below signal (+2), negative histogram (+1) -> net -5
    hold: no MACD reading, so scoring short-circuits to HOLD
    """
    bands = BollingerBands(upper=price * 1.1, middle=price, lower=price * 0.9)
    if bias == "bull":
        rsi, macd = 25.0, MacdReading(line=1.0, signal=0.5, histogram=0.5)
    elif bias == "bear":
        rsi, macd = 75.0, MacdReading(line=0.5, signal=1.0, histogram=-0.5)
    else:
        rsi, macd = 50.0, None

    return AssetSnapshot(
        symbol=symbol,
        name=symbol,
        price=price,
        previous_close=price,
        change_percent=0.0,
        indicators=IndicatorSnapshot(
            current_price=price,
            rsi=rsi,
            macd=macd,
            bollinger=bands,
            atr=atr,
        ),
        source=source,
    )


@pytest.fixture
def snapshot_factory() -> Callable[..., AssetSnapshot]:
    return make_snapshot
