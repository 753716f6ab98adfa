"""Volatility indicators: Bollinger Bands and Wilder ATR."""

import math

from alertbot.indicators.models import BollingerBands


def bollinger(
    closes: list[float], period: int = 20, multiplier: float = 2.0
) -> BollingerBands | None:
    """Bollinger Bands over the trailing ``period`` closes.

    Uses population variance (denominator = period).
    """
    if period <= 0 or len(closes) < period:
        return None

    window = closes[-period:]
    mean = sum(window) / period
    variance = sum((x - mean) ** 2 for x in window) / period
    sd = math.sqrt(variance)
    return BollingerBands(
        upper=mean + multiplier * sd,
        middle=mean,
        lower=mean - multiplier * sd,
    )


def true_ranges(highs: list[float], lows: list[float], closes: list[float]) -> list[float]:
    """True range for every bar after the first.

    TR = max(high - low, |high - prev_close|, |low - prev_close|)
    """
    length = min(len(highs), len(lows), len(closes))
    out = []
    for i in range(1, length):
        prev_close = closes[i - 1]
        out.append(
            max(
                highs[i] - lows[i],
                abs(highs[i] - prev_close),
                abs(lows[i] - prev_close),
            )
        )
    return out


def atr(
    highs: list[float], lows: list[float], closes: list[float], period: int = 14
) -> float | None:
    """Average True Range with Wilder smoothing.

    Seeds with the mean of the first ``period`` true ranges, then rolls
    forward with ``atr = (atr * (period - 1) + tr) / period``.
    """
    if min(len(highs), len(lows), len(closes)) <= period:
        return None

    trs = true_ranges(highs, lows, closes)
    if len(trs) < period:
        return None

    value = sum(trs[:period]) / period
    for tr in trs[period:]:
        value = (value * (period - 1) + tr) / period
    return value
