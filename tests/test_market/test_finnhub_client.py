"""Tests for the rate-limited Finnhub client.

A fake clock drives the limiter and a scripted transport replaces aiohttp,
so no test touches the network or really sleeps.
"""

import asyncio

import pytest
from pydantic import SecretStr

from alertbot.config import MarketDataSettings
from alertbot.exceptions import (
    EndpointForbiddenError,
    MissingApiKeyError,
    ProviderHTTPError,
    ProviderRateLimitError,
)
from alertbot.market.finnhub_client import FinnhubClient, TransportResponse
from alertbot.market.rate_limiter import ProviderRateLimiter
from conftest import FakeClock


class ScriptedTransport:
    """Returns queued responses per path and records when each call started.

    Each call yields to the event loop once, like a real request would.
    """

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self.responses: dict[str, list[TransportResponse]] = {}
        self.calls: list[tuple[str, dict, float]] = []
        self.closed = False

    def queue(self, path: str, status: int, text: str = "{}") -> None:
        self.responses.setdefault(path, []).append(TransportResponse(status, text))

    async def get(self, url: str, params: dict) -> TransportResponse:
        path = url.split("/api/v1", 1)[1]
        self.calls.append((path, params, self._clock()))
        # Let queued callers reach the limiter while this call is in flight.
        await asyncio.sleep(0)
        queued = self.responses.get(path)
        if queued:
            return queued.pop(0)
        return TransportResponse(200, '{"c": 101.5, "pc": 100.0}')

    async def close(self) -> None:
        self.closed = True


def _settings(**overrides: object) -> MarketDataSettings:
    values: dict[str, object] = {"api_key": SecretStr("test-key"), "rate_limit_retries": 0}
    values.update(overrides)
    return MarketDataSettings(**values)


@pytest.fixture
def transport(fake_clock: FakeClock) -> ScriptedTransport:
    return ScriptedTransport(fake_clock)


def _client(
    fake_clock: FakeClock, transport: ScriptedTransport, **overrides: object
) -> FinnhubClient:
    settings = _settings(**overrides)
    limiter = ProviderRateLimiter(
        min_interval=settings.min_interval_seconds,
        provider_cooldown=settings.provider_cooldown_seconds,
        endpoint_cooldown=settings.endpoint_cooldown_seconds,
        clock=fake_clock,
        sleep=fake_clock.sleep,
    )
    return FinnhubClient(settings, limiter=limiter, transport=transport)


# ──────────────────────────────────────────────
# Spacing
# ──────────────────────────────────────────────


class TestSpacing:
    """Calls are serialized and spaced by the minimum interval."""

    @pytest.mark.asyncio
    async def test_concurrent_calls_are_spaced(self, fake_clock, transport) -> None:
        client = _client(fake_clock, transport)

        await asyncio.gather(
            client.quote("AAPL"),
            client.quote("MSFT"),
            client.quote("NVDA"),
        )

        assert fake_clock.sleeps == pytest.approx([1.3, 1.3])
        assert [t for _, _, t in transport.calls] == pytest.approx([0.0, 1.3, 2.6])

    @pytest.mark.asyncio
    async def test_first_call_does_not_wait(self, fake_clock, transport) -> None:
        client = _client(fake_clock, transport)
        await client.quote("AAPL")
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_no_wait_after_interval_elapsed(self, fake_clock, transport) -> None:
        client = _client(fake_clock, transport)
        await client.quote("AAPL")
        fake_clock.now += 5.0
        await client.quote("AAPL")
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_token_is_sent(self, fake_clock, transport) -> None:
        client = _client(fake_clock, transport)
        await client.quote("AAPL")
        _, params, _ = transport.calls[0]
        assert params == {"symbol": "AAPL", "token": "test-key"}


# ──────────────────────────────────────────────
# Rate limits and entitlement cooldowns
# ──────────────────────────────────────────────


class TestCooldowns:
    """429 blocks every path; a plain 403 blocks only its own path."""

    @pytest.mark.asyncio
    async def test_rate_limit_blocks_all_paths(self, fake_clock, transport) -> None:
        client = _client(fake_clock, transport)
        transport.queue("/quote", 429)

        with pytest.raises(ProviderRateLimitError) as exc_info:
            await client.quote("AAPL")
        assert exc_info.value.status == 429
        assert exc_info.value.retry_after == 65.0

        assert client.limiter.compute_wait("/stock/candle") == pytest.approx(65.0)
        assert client.limiter.compute_wait("/quote") == pytest.approx(65.0)

        await client.candles("AAPL", "D", 0, 100)
        assert fake_clock.sleeps == pytest.approx([65.0])

    @pytest.mark.asyncio
    async def test_forbidden_with_limit_message_is_rate_limit(self, fake_clock, transport) -> None:
        client = _client(fake_clock, transport)
        transport.queue("/quote", 403, '{"error": "API limit reached"}')

        with pytest.raises(ProviderRateLimitError):
            await client.quote("AAPL")
        assert client.limiter.provider_blocked_for() == pytest.approx(65.0)
        assert client.limiter.endpoint_blocked_for("/quote") == 0.0

    @pytest.mark.asyncio
    async def test_rate_limit_retried_after_cooldown(self, fake_clock, transport) -> None:
        client = _client(fake_clock, transport, rate_limit_retries=1)
        transport.queue("/quote", 429)

        payload = await client.quote("AAPL")

        assert payload["c"] == 101.5
        assert len(transport.calls) == 2
        assert transport.calls[1][2] == pytest.approx(65.0)
        assert client.stats.retries == 1
        assert client.stats.rate_limited == 1

    @pytest.mark.asyncio
    async def test_forbidden_blocks_only_that_path(self, fake_clock, transport) -> None:
        client = _client(fake_clock, transport)
        transport.queue("/stock/candle", 403, '{"error": "You don\'t have access"}')

        with pytest.raises(EndpointForbiddenError) as exc_info:
            await client.candles("AAPL", "D", 0, 100)
        assert exc_info.value.status == 403
        assert exc_info.value.path == "/stock/candle"

        assert client.limiter.endpoint_blocked_for("/stock/candle") == pytest.approx(3600.0)
        assert client.limiter.compute_wait("/quote") == pytest.approx(1.3)

        await client.quote("AAPL")
        assert fake_clock.sleeps == pytest.approx([1.3])

    @pytest.mark.asyncio
    async def test_forbidden_path_fails_fast(self, fake_clock, transport) -> None:
        client = _client(fake_clock, transport)
        transport.queue("/stock/candle", 403)

        with pytest.raises(EndpointForbiddenError):
            await client.candles("AAPL", "D", 0, 100)
        calls_before = len(transport.calls)

        with pytest.raises(EndpointForbiddenError) as exc_info:
            await client.candles("MSFT", "D", 0, 100)

        assert len(transport.calls) == calls_before
        assert exc_info.value.retry_after == pytest.approx(3600.0)
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_forbidden_path_waits_when_fail_fast_disabled(self, fake_clock, transport) -> None:
        client = _client(fake_clock, transport, fail_fast_forbidden=False)
        transport.queue("/stock/candle", 403)

        with pytest.raises(EndpointForbiddenError):
            await client.candles("AAPL", "D", 0, 100)
        await client.candles("AAPL", "D", 0, 100)

        assert fake_clock.sleeps == pytest.approx([3600.0])


class TestQueuedCallers:
    """Calls already waiting on the queue when a cooldown opens."""

    @pytest.mark.asyncio
    async def test_queued_call_on_forbidden_path_does_not_hold_queue(
        self, fake_clock, transport
    ) -> None:
        client = _client(fake_clock, transport)
        transport.queue("/stock/candle", 403)

        first, second, third = await asyncio.gather(
            client.candles("AAPL", "D", 0, 100),
            client.candles("MSFT", "D", 0, 100),
            client.quote("NVDA"),
            return_exceptions=True,
        )

        assert isinstance(first, EndpointForbiddenError)
        assert isinstance(second, EndpointForbiddenError)
        assert second.retry_after == pytest.approx(3600.0)
        assert third["c"] == 101.5
        assert fake_clock.sleeps == pytest.approx([1.3])
        assert [(path, t) for path, _, t in transport.calls] == [
            ("/stock/candle", 0.0),
            ("/quote", pytest.approx(1.3)),
        ]
        assert client.stats.forbidden == 2

    @pytest.mark.asyncio
    async def test_queued_call_waits_out_rate_limit(self, fake_clock, transport) -> None:
        client = _client(fake_clock, transport)
        transport.queue("/quote", 429)

        limited, candles = await asyncio.gather(
            client.quote("AAPL"),
            client.candles("MSFT", "D", 0, 100),
            return_exceptions=True,
        )

        assert isinstance(limited, ProviderRateLimitError)
        assert candles["c"] == 101.5
        assert fake_clock.sleeps == pytest.approx([65.0])
        assert transport.calls[1][0] == "/stock/candle"
        assert transport.calls[1][2] == pytest.approx(65.0)


# ──────────────────────────────────────────────
# Other failures
# ──────────────────────────────────────────────


class TestErrors:
    """Non-limit failures and configuration errors."""

    @pytest.mark.asyncio
    async def test_server_error_raises_with_status(self, fake_clock, transport) -> None:
        client = _client(fake_clock, transport)
        transport.queue("/quote", 500)

        with pytest.raises(ProviderHTTPError) as exc_info:
            await client.quote("AAPL")

        assert exc_info.value.status == 500
        assert client.stats.errors == 1
        assert client.stats.last_error == "HTTP 500 on /quote"
        assert client.limiter.provider_blocked_for() == 0.0

    @pytest.mark.asyncio
    async def test_missing_key(self, fake_clock, transport) -> None:
        client = _client(fake_clock, transport, api_key=SecretStr(""))
        with pytest.raises(MissingApiKeyError):
            await client.quote("AAPL")
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_close_closes_transport(self, fake_clock, transport) -> None:
        client = _client(fake_clock, transport)
        await client.close()
        assert transport.closed


class TestEndpoints:
    """Provider symbols for crypto and forex candles."""

    @pytest.mark.asyncio
    async def test_crypto_candles_prefix(self, fake_clock, transport) -> None:
        client = _client(fake_clock, transport)
        await client.crypto_candles("BTCUSDT", "D", 0, 100)
        path, params, _ = transport.calls[0]
        assert path == "/crypto/candle"
        assert params["symbol"] == "BINANCE:BTCUSDT"

    @pytest.mark.asyncio
    async def test_forex_candles_symbol(self, fake_clock, transport) -> None:
        client = _client(fake_clock, transport)
        await client.forex_candles("EUR", "USD", "D", 0, 100)
        path, params, _ = transport.calls[0]
        assert path == "/forex/candle"
        assert params["symbol"] == "OANDA:EUR_USD"

    @pytest.mark.asyncio
    async def test_health_reports_counters(self, fake_clock, transport) -> None:
        client = _client(fake_clock, transport)
        await client.quote("AAPL")
        health = client.health()
        assert health["calls"] == 1
        assert health["errors"] == 0
        assert health["provider_cooldown_remaining"] == 0.0
