"""Adaptive stop-loss / take-profit levels from price, ATR and RSI regime."""

from alertbot.models import Direction
from alertbot.scoring.models import StopLevels

#: Reward multiple applied on top of the stop distance.
REWARD_RATIO = 2.5


def atr_multiplier(rsi: float | None) -> float:
    """ATR multiplier for the current RSI regime.

    2.0 above 60 (trending/overbought, tighter stop), 2.5 below 40
    (choppy/oversold, wider stop), 2.2 otherwise or when RSI is unknown.
    """
    if rsi is None:
        return 2.2
    if rsi > 60:
        return 2.0
    if rsi < 40:
        return 2.5
    return 2.2


def compute_adaptive_stops(
    price: float | None,
    atr: float | None,
    rsi: float | None,
    direction: Direction = Direction.BULL,
) -> StopLevels:
    """Derive stop and target levels.

    Long side:  stop = price - atr * m,  target = price + atr * m * 2.5
    Short side mirrors both levels around price.

    Returns StopLevels(None, None) when price or ATR is missing or not
    positive. Callers must not persist a signal without a usable stop.
    """
    if not price or not atr or price <= 0 or atr <= 0:
        return StopLevels(stop_loss=None, take_profit=None)

    m = atr_multiplier(rsi)
    risk = atr * m
    if direction is Direction.BEAR:
        return StopLevels(
            stop_loss=price + risk,
            take_profit=price - risk * REWARD_RATIO,
            multiplier=m,
        )
    return StopLevels(
        stop_loss=price - risk,
        take_profit=price + risk * REWARD_RATIO,
        multiplier=m,
    )
