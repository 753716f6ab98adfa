"""Tests for regime-dependent ATR stops."""

import pytest

from alertbot.models import Direction
from alertbot.scoring.stops import atr_multiplier, compute_adaptive_stops


class TestAtrMultiplier:
    """RSI regime to multiplier."""

    @pytest.mark.parametrize(
        ("rsi", "expected"),
        [(70.0, 2.0), (60.5, 2.0), (60.0, 2.2), (50.0, 2.2), (40.0, 2.2), (39.9, 2.5), (None, 2.2)],
    )
    def test_regimes(self, rsi: float | None, expected: float) -> None:
        assert atr_multiplier(rsi) == expected


class TestAdaptiveStops:
    """stop = price - atr * m, target = price + atr * m * 2.5."""

    def test_neutral_regime(self) -> None:
        levels = compute_adaptive_stops(100.0, 4.0, 50.0)
        assert levels.stop_loss == pytest.approx(91.2)
        assert levels.take_profit == pytest.approx(122.0)
        assert levels.multiplier == 2.2

    def test_overbought_regime_tightens_stop(self) -> None:
        levels = compute_adaptive_stops(100.0, 4.0, 70.0)
        assert levels.stop_loss == pytest.approx(92.0)
        assert levels.take_profit == pytest.approx(120.0)

    def test_oversold_regime_widens_stop(self) -> None:
        levels = compute_adaptive_stops(100.0, 4.0, 30.0)
        assert levels.stop_loss == pytest.approx(90.0)
        assert levels.take_profit == pytest.approx(125.0)

    def test_bearish_levels_are_mirrored(self) -> None:
        levels = compute_adaptive_stops(100.0, 4.0, 50.0, Direction.BEAR)
        assert levels.stop_loss == pytest.approx(108.8)
        assert levels.take_profit == pytest.approx(78.0)

    @pytest.mark.parametrize(("price", "atr"), [(None, 4.0), (100.0, None), (0.0, 4.0), (100.0, -1.0)])
    def test_unusable_without_price_or_atr(self, price: float | None, atr: float | None) -> None:
        levels = compute_adaptive_stops(price, atr, 50.0)
        assert levels.stop_loss is None
        assert levels.take_profit is None
        assert not levels.usable
