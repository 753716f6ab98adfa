"""Market data access: provider interface, Finnhub client, synthetic fallback."""

from alertbot.market.client import MarketDataProvider
from alertbot.market.finnhub_client import FinnhubClient, TransportResponse
from alertbot.market.rate_limiter import ProviderRateLimiter

__all__ = [
    "FinnhubClient",
    "MarketDataProvider",
    "ProviderRateLimiter",
    "TransportResponse",
]
