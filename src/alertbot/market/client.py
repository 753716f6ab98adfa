"""Abstract market data provider interface.

Engine and evaluator code depends only on this interface, keeping
Finnhub-specific details isolated in the concrete implementation.
"""

from abc import ABC, abstractmethod


class MarketDataProvider(ABC):
    """Abstract base class for quote/candle providers.

    Candle methods return the provider's raw array payload:
    ``{"s": "ok", "t": [...], "o": [...], "h": [...], "l": [...], "c": [...], "v": [...]}``.
    Quote returns ``{"c": price, "pc": previous_close, ...}``.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open network resources."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""
        ...

    @abstractmethod
    async def quote(self, symbol: str) -> dict:
        """Fetch the latest quote for a provider symbol."""
        ...

    @abstractmethod
    async def candles(
        self, symbol: str, resolution: str, from_ts: int, to_ts: int
    ) -> dict:
        """Fetch stock candles between two Unix timestamps (seconds)."""
        ...

    @abstractmethod
    async def crypto_candles(
        self, symbol: str, resolution: str, from_ts: int, to_ts: int
    ) -> dict:
        """Fetch crypto candles for an exchange pair such as BTCUSDT."""
        ...

    @abstractmethod
    async def forex_candles(
        self, base: str, quote: str, resolution: str, from_ts: int, to_ts: int
    ) -> dict:
        """Fetch forex candles for a currency pair."""
        ...

    @abstractmethod
    async def profile(self, symbol: str) -> dict:
        """Fetch company profile data."""
        ...
