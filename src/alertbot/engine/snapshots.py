"""Asset snapshot construction: quote + daily candles -> indicators.

Symbols are routed by shape or category:
- crypto (``*USDT`` or category "crypto"): quote ``BINANCE:<symbol>``,
  crypto candles
- forex (``BASE_QUOTE`` or category "fx"): quote ``OANDA:BASE_QUOTE``,
  forex candles
- everything else: stock quote and candles

When the provider is forbidden or rate limited for a path, a synthetic
snapshot is built instead (if enabled) and labelled ``source=synthetic``.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from alertbot.exceptions import EndpointForbiddenError, ProviderRateLimitError
from alertbot.indicators import IndicatorSnapshot, OHLCVSeries, calculate_indicators
from alertbot.logging import get_logger
from alertbot.market.client import MarketDataProvider
from alertbot.market.synthetic import synthetic_candles, synthetic_quote
from alertbot.models import SnapshotSource

logger = get_logger(__name__)

_DAY_SECONDS = 86_400

#: Provider failures that the synthetic source may stand in for.
RECOVERABLE_ERRORS = (EndpointForbiddenError, ProviderRateLimitError)


class AssetKind(str, Enum):
    STOCK = "stock"
    CRYPTO = "crypto"
    FOREX = "fx"


def classify_symbol(symbol: str, category: str | None = None) -> AssetKind:
    normalized_category = (category or "").lower()
    upper = symbol.upper()
    if normalized_category == "crypto" or upper.endswith("USDT"):
        return AssetKind.CRYPTO
    if normalized_category == "fx" or "_" in upper:
        return AssetKind.FOREX
    return AssetKind.STOCK


def quote_symbol(symbol: str, kind: AssetKind) -> str:
    """Provider symbol used for the quote endpoint."""
    if kind is AssetKind.CRYPTO:
        return f"BINANCE:{symbol}"
    if kind is AssetKind.FOREX:
        return f"OANDA:{symbol}"
    return symbol


@dataclass
class AssetSnapshot:
    """Latest price, day change and indicators for one symbol."""

    symbol: str
    name: str
    price: float
    previous_close: float
    change_percent: float
    indicators: IndicatorSnapshot
    category: str | None = None
    source: SnapshotSource = SnapshotSource.PROVIDER

    @property
    def is_synthetic(self) -> bool:
        return self.source is SnapshotSource.SYNTHETIC

    def to_dict(self) -> dict:
        """Indicator view persisted with alerts, tagged with its data source."""
        return {
            **self.indicators.to_dict(),
            "changePercent": self.change_percent,
            "source": self.source.value,
            "synthetic": self.is_synthetic,
        }


def _positive(value: object) -> float | None:
    try:
        out = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return out if out > 0 else None


def build_asset_snapshot(
    symbol: str,
    quote: dict | None,
    candles: dict,
    name: str | None = None,
    category: str | None = None,
    source: SnapshotSource = SnapshotSource.PROVIDER,
) -> AssetSnapshot | None:
    """Assemble a snapshot from raw provider payloads.

    Returns None when the candles are not usable (status other than "ok",
    or too few bars for indicators).
    """
    if candles.get("s") != "ok":
        return None

    series = OHLCVSeries.from_provider(candles)
    indicators = calculate_indicators(series)
    if indicators is None:
        return None

    closes = series.closes
    quote = quote or {}
    price = _positive(quote.get("c")) or indicators.current_price
    fallback_prev = closes[-2] if len(closes) >= 2 else price
    previous_close = _positive(quote.get("pc")) or fallback_prev
    change_percent = (price - previous_close) / previous_close * 100 if previous_close else 0.0

    return AssetSnapshot(
        symbol=symbol,
        name=name or symbol,
        category=category,
        price=price,
        previous_close=previous_close,
        change_percent=change_percent,
        indicators=indicators,
        source=source,
    )


class SnapshotBuilder:
    """Fetches quotes and candles through a MarketDataProvider.

    Args:
        provider: Market data provider (rate limited by its own limiter).
        lookback_days: Daily candle history requested per symbol.
        synthetic_fallback: Substitute synthetic data on forbidden or
            rate-limited paths instead of skipping the symbol.
        clock: Wall-clock source in Unix seconds.
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        lookback_days: int = 260,
        synthetic_fallback: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._provider = provider
        self._lookback_days = lookback_days
        self._synthetic_fallback = synthetic_fallback
        self._clock = clock

    async def build(
        self,
        symbol: str,
        name: str | None = None,
        category: str | None = None,
    ) -> AssetSnapshot | None:
        """Build a snapshot for ``symbol``.

        Returns None when the provider has no usable data. Raises provider
        errors that synthetic data cannot stand in for.
        """
        symbol = symbol.upper()
        kind = classify_symbol(symbol, category)
        if kind is AssetKind.FOREX:
            base, _, quote_ccy = symbol.partition("_")
            if not base or not quote_ccy:
                return None

        to_ts = int(self._clock())
        from_ts = to_ts - self._lookback_days * _DAY_SECONDS

        quote: dict | None = None
        try:
            quote = await self._provider.quote(quote_symbol(symbol, kind))
            candles = await self._fetch_candles(symbol, kind, from_ts, to_ts)
        except RECOVERABLE_ERRORS as e:
            if not self._synthetic_fallback:
                raise
            return self._synthetic_snapshot(symbol, name, category, quote, e, to_ts)

        return build_asset_snapshot(symbol, quote, candles, name, category)

    async def live_price(self, symbol: str, category: str | None = None) -> float | None:
        """Latest provider price. Never synthetic; provider errors propagate."""
        symbol = symbol.upper()
        quote = await self._provider.quote(quote_symbol(symbol, classify_symbol(symbol, category)))
        return _positive(quote.get("c"))

    async def _fetch_candles(self, symbol: str, kind: AssetKind, from_ts: int, to_ts: int) -> dict:
        if kind is AssetKind.CRYPTO:
            return await self._provider.crypto_candles(symbol, "D", from_ts, to_ts)
        if kind is AssetKind.FOREX:
            base, _, quote_ccy = symbol.partition("_")
            return await self._provider.forex_candles(base, quote_ccy, "D", from_ts, to_ts)
        return await self._provider.candles(symbol, "D", from_ts, to_ts)

    def _synthetic_snapshot(
        self,
        symbol: str,
        name: str | None,
        category: str | None,
        quote: dict | None,
        error: Exception,
        now: int,
    ) -> AssetSnapshot | None:
        retry_after = getattr(error, "retry_after", 0.0)
        if not quote or _positive(quote.get("c")) is None:
            quote = synthetic_quote(symbol, retry_after=retry_after, now=now)
        candles = synthetic_candles(
            symbol,
            days=self._lookback_days,
            end_ts=now,
            price=_positive(quote.get("c")),
            previous_close=_positive(quote.get("pc")),
        )
        logger.warning(
            "synthetic_snapshot_used",
            symbol=symbol,
            reason=getattr(error, "code", type(error).__name__),
            retry_after=retry_after,
        )
        return build_asset_snapshot(
            symbol, quote, candles, name, category, source=SnapshotSource.SYNTHETIC
        )
