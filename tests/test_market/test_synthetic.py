"""Tests for the synthetic quote and candle fallback."""

import pytest

from alertbot.market.synthetic import symbol_base_price, synthetic_candles, synthetic_quote


class TestBasePrice:
    """Deterministic reference prices."""

    @pytest.mark.parametrize(
        ("symbol", "expected"),
        [("BTCUSDT", 60000.0), ("ethusdt", 3000.0), ("DOGEUSDT", 100.0), ("USD_JPY", 150.0), ("EUR_USD", 1.1)],
    )
    def test_tables(self, symbol: str, expected: float) -> None:
        assert symbol_base_price(symbol) == expected

    def test_stock_hash_is_stable_and_bounded(self) -> None:
        price = symbol_base_price("AAPL")
        assert price == symbol_base_price("aapl")
        assert 40.0 <= price < 500.0

    def test_empty_symbol(self) -> None:
        assert symbol_base_price("") == 100.0


class TestSyntheticPayloads:
    """Payloads carry the synthetic flag and match the provider shape."""

    def test_quote_is_flagged(self) -> None:
        quote = synthetic_quote("BTCUSDT", retry_after=65.0, now=1_700_000_000)
        assert quote["c"] == 60000.0
        assert quote["pc"] == 60000.0
        assert quote["synthetic"] is True
        assert quote["retry_after"] == 65.0
        assert quote["t"] == 1_700_000_000

    def test_candles_end_at_price(self) -> None:
        candles = synthetic_candles("AAPL", days=30, end_ts=1_700_000_000, price=110.0, previous_close=100.0)
        assert candles["s"] == "ok"
        assert candles["synthetic"] is True
        assert len(candles["c"]) == 30
        assert candles["c"][0] == pytest.approx(100.0)
        assert candles["c"][-1] == pytest.approx(110.0)
        assert candles["t"][-1] == 1_700_000_000
        assert all(b > a for a, b in zip(candles["t"], candles["t"][1:]))

    def test_candles_flat_without_previous_close(self) -> None:
        candles = synthetic_candles("EUR_USD", days=5, end_ts=1_700_000_000)
        assert candles["c"] == pytest.approx([1.1] * 5)
        assert candles["h"] == candles["l"]
