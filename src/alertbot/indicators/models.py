"""Indicator data models: OHLCV series and the composite indicator snapshot.

Any snapshot field may be None when its own window is not met. Consumers
must treat None as "no signal", never as zero.
"""

import math
from dataclasses import dataclass, field

from alertbot.exceptions import InsufficientDataError

#: Minimum closes before a composite snapshot is considered valid.
MIN_SERIES_LENGTH = 30


@dataclass
class OHLCVBar:
    """A single OHLCV bar keyed by Unix timestamp (seconds)."""

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass
class OHLCVSeries:
    """Ordered OHLCV bars with strictly increasing timestamps."""

    bars: list[OHLCVBar] = field(default_factory=list)

    def __post_init__(self) -> None:
        for prev, cur in zip(self.bars, self.bars[1:]):
            if cur.timestamp <= prev.timestamp:
                raise InsufficientDataError(
                    f"Non-increasing timestamp {cur.timestamp} after {prev.timestamp}"
                )

    def __len__(self) -> int:
        return len(self.bars)

    @property
    def closes(self) -> list[float]:
        return [b.close for b in self.bars]

    @property
    def highs(self) -> list[float]:
        return [b.high for b in self.bars]

    @property
    def lows(self) -> list[float]:
        return [b.low for b in self.bars]

    @property
    def volumes(self) -> list[float]:
        return [b.volume for b in self.bars]

    @classmethod
    def from_provider(cls, payload: dict) -> "OHLCVSeries":
        """Build a series from provider candle arrays (t, o, h, l, c, v).

        Bars with any non-finite field are dropped. Missing open falls back
        to close; missing volume falls back to 0.
        """
        times = payload.get("t") or []
        closes = payload.get("c") or []
        opens = payload.get("o") or []
        highs = payload.get("h") or []
        lows = payload.get("l") or []
        volumes = payload.get("v") or []

        bars: list[OHLCVBar] = []
        for i, ts in enumerate(times):
            try:
                close = float(closes[i])
                high = float(highs[i])
                low = float(lows[i])
                open_ = float(opens[i]) if i < len(opens) else close
                volume = float(volumes[i]) if i < len(volumes) else 0.0
                timestamp = int(ts)
            except (IndexError, TypeError, ValueError):
                continue
            if not all(math.isfinite(x) for x in (close, high, low, open_, volume)):
                continue
            bars.append(OHLCVBar(timestamp, open_, high, low, close, volume))
        return cls(bars)


@dataclass
class MacdReading:
    """MACD line, signal and histogram at the latest bar."""

    line: float
    signal: float
    histogram: float


@dataclass
class BollingerBands:
    """Bollinger bands at the latest bar."""

    upper: float
    middle: float
    lower: float


@dataclass
class IndicatorSnapshot:
    """Composite indicator readings for the latest bar of a series."""

    current_price: float
    rsi: float | None = None
    macd: MacdReading | None = None
    bollinger: BollingerBands | None = None
    sma50: float | None = None
    sma200: float | None = None
    atr: float | None = None
    volume_ratio: float | None = None

    def to_dict(self) -> dict:
        """Flat JSON-friendly view persisted with alerts and sent to the reviewer."""
        return {
            "rsi": self.rsi,
            "macd": (
                {
                    "line": self.macd.line,
                    "signal": self.macd.signal,
                    "histogram": self.macd.histogram,
                }
                if self.macd
                else None
            ),
            "sma50": self.sma50,
            "sma200": self.sma200,
            "atr": self.atr,
            "bollingerUpper": self.bollinger.upper if self.bollinger else None,
            "bollingerLower": self.bollinger.lower if self.bollinger else None,
            "volumeRatio": self.volume_ratio,
            "currentPrice": self.current_price,
        }
