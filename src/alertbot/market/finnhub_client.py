"""Finnhub market data client over aiohttp with a serializing rate limiter.

Every request is funnelled through the instance's ProviderRateLimiter.
Failure handling:
- 429, or 403 whose body mentions a limit: open the global provider
  cooldown and retry transparently after it (rate_limit_retries times),
  then raise ProviderRateLimitError.
- plain 403: cool down only that path and raise EndpointForbiddenError.
  Later calls to that path fail fast while the cooldown is open.
- any other non-2xx: raise ProviderHTTPError with the status.
"""

import json
from dataclasses import dataclass

import aiohttp

from alertbot.config import MarketDataSettings
from alertbot.exceptions import (
    EndpointForbiddenError,
    MissingApiKeyError,
    ProviderError,
    ProviderHTTPError,
    ProviderRateLimitError,
)
from alertbot.logging import get_logger
from alertbot.market.client import MarketDataProvider
from alertbot.market.rate_limiter import ProviderRateLimiter

logger = get_logger(__name__)


@dataclass
class TransportResponse:
    """Minimal HTTP response view used by the client."""

    status: int
    text: str


class AiohttpTransport:
    """GET transport backed by a lazily created aiohttp session."""

    def __init__(self, timeout_seconds: float = 15.0) -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: aiohttp.ClientSession | None = None

    async def get(self, url: str, params: dict) -> TransportResponse:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        try:
            async with self._session.get(url, params=params) as response:
                return TransportResponse(status=response.status, text=await response.text())
        except (aiohttp.ClientError, TimeoutError) as e:
            raise ProviderError(f"Transport error: {e}", path=url) from e

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None


@dataclass
class ProviderStats:
    """Health counters for the provider connection."""

    calls: int = 0
    errors: int = 0
    rate_limited: int = 0
    retries: int = 0
    forbidden: int = 0
    last_error: str = ""
    last_call_at: float | None = None


def _is_rate_limited(status: int, body: str) -> bool:
    return status == 429 or (status == 403 and "limit" in body.lower())


class FinnhubClient(MarketDataProvider):
    """Concrete Finnhub client.

    Args:
        settings: Provider settings (key, base URL, limiter timings).
        limiter: Rate limiter owned by this client. Built from settings
            when omitted.
        transport: Object with ``async get(url, params)`` and
            ``async close()``. Defaults to AiohttpTransport.
    """

    def __init__(
        self,
        settings: MarketDataSettings,
        limiter: ProviderRateLimiter | None = None,
        transport: AiohttpTransport | None = None,
    ) -> None:
        self._settings = settings
        self._limiter = limiter or ProviderRateLimiter(
            min_interval=settings.min_interval_seconds,
            provider_cooldown=settings.provider_cooldown_seconds,
            endpoint_cooldown=settings.endpoint_cooldown_seconds,
        )
        self._transport = transport or AiohttpTransport(settings.request_timeout_seconds)
        self.stats = ProviderStats()

    @property
    def limiter(self) -> ProviderRateLimiter:
        return self._limiter

    async def connect(self) -> None:
        if not self._settings.api_key.get_secret_value():
            logger.warning("finnhub_key_missing", note="Provider calls will fail")
        logger.info("finnhub_client_ready", base_url=self._settings.base_url)

    async def close(self) -> None:
        await self._transport.close()
        logger.info("finnhub_client_closed")

    def health(self) -> dict:
        """Snapshot of counters plus current cooldown state."""
        return {
            "calls": self.stats.calls,
            "errors": self.stats.errors,
            "rate_limited": self.stats.rate_limited,
            "retries": self.stats.retries,
            "forbidden": self.stats.forbidden,
            "last_error": self.stats.last_error,
            "last_call_at": self.stats.last_call_at,
            "provider_cooldown_remaining": self._limiter.provider_blocked_for(),
        }

    # ──────────────────────────────────────────────
    # Public endpoints
    # ──────────────────────────────────────────────

    async def quote(self, symbol: str) -> dict:
        return await self._get("/quote", {"symbol": symbol})

    async def candles(
        self, symbol: str, resolution: str, from_ts: int, to_ts: int
    ) -> dict:
        return await self._get(
            "/stock/candle",
            {"symbol": symbol, "resolution": resolution, "from": from_ts, "to": to_ts},
        )

    async def crypto_candles(
        self, symbol: str, resolution: str, from_ts: int, to_ts: int
    ) -> dict:
        pair = symbol if ":" in symbol else f"BINANCE:{symbol}"
        return await self._get(
            "/crypto/candle",
            {"symbol": pair, "resolution": resolution, "from": from_ts, "to": to_ts},
        )

    async def forex_candles(
        self, base: str, quote: str, resolution: str, from_ts: int, to_ts: int
    ) -> dict:
        return await self._get(
            "/forex/candle",
            {
                "symbol": f"OANDA:{base}_{quote}",
                "resolution": resolution,
                "from": from_ts,
                "to": to_ts,
            },
        )

    async def profile(self, symbol: str) -> dict:
        return await self._get("/stock/profile2", {"symbol": symbol})

    # ──────────────────────────────────────────────
    # Request pipeline
    # ──────────────────────────────────────────────

    async def _get(self, path: str, params: dict) -> dict:
        """Issue one rate-limited GET and decode the JSON body."""
        api_key = self._settings.api_key.get_secret_value()
        if not api_key:
            raise MissingApiKeyError("Missing FINNHUB_API_KEY")

        url = f"{self._settings.base_url.rstrip('/')}{path}"
        query = {**params, "token": api_key}
        attempts = 0

        while True:
            try:
                async with self._limiter.slot(path, fail_fast=self._settings.fail_fast_forbidden):
                    self.stats.calls += 1
                    self.stats.last_call_at = self._limiter.last_call_start
                    response = await self._transport.get(url, query)
            except EndpointForbiddenError:
                self.stats.forbidden += 1
                raise
            except ProviderError as e:
                self._record_error(f"{e} on {path}")
                raise

            if 200 <= response.status < 300:
                return self._decode(response, path)

            if _is_rate_limited(response.status, response.text):
                self.stats.rate_limited += 1
                cooldown = self._limiter.open_provider_cooldown()
                if attempts < self._settings.rate_limit_retries:
                    attempts += 1
                    self.stats.retries += 1
                    logger.warning(
                        "finnhub_rate_limited_retrying",
                        path=path,
                        attempt=attempts,
                        cooldown=cooldown,
                    )
                    continue
                self._record_error(f"HTTP {response.status} on {path}")
                raise ProviderRateLimitError(
                    f"Finnhub rate limit on {path}",
                    status=429,
                    path=path,
                    retry_after=cooldown,
                )

            if response.status == 403:
                self.stats.forbidden += 1
                cooldown = self._limiter.open_endpoint_cooldown(path)
                self._record_error(f"HTTP 403 on {path}")
                raise EndpointForbiddenError(
                    f"Finnhub endpoint {path} forbidden for this plan",
                    status=403,
                    path=path,
                    retry_after=cooldown,
                )

            self._record_error(f"HTTP {response.status} on {path}")
            raise ProviderHTTPError(
                f"Finnhub HTTP {response.status}",
                status=response.status,
                path=path,
            )

    def _decode(self, response: TransportResponse, path: str) -> dict:
        try:
            payload = json.loads(response.text) if response.text else {}
        except json.JSONDecodeError as e:
            self._record_error(f"invalid JSON on {path}")
            raise ProviderError(
                f"Finnhub returned invalid JSON on {path}",
                status=response.status,
                path=path,
            ) from e
        return payload if isinstance(payload, dict) else {"data": payload}

    def _record_error(self, message: str) -> None:
        self.stats.errors += 1
        self.stats.last_error = message
