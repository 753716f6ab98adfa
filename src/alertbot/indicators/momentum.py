"""Momentum indicators: Wilder RSI and MACD."""

from alertbot.indicators.models import MacdReading
from alertbot.indicators.moving_average import ema_series


def rsi(closes: list[float], period: int = 14) -> float | None:
    """Relative Strength Index with Wilder smoothing.

    Seeds average gain/loss with the simple mean of the first ``period``
    diffs, then rolls forward with ``avg = (avg * (period - 1) + x) / period``.

    Returns:
        RSI in [0, 100]; exactly 100 when the average loss is zero.
        None if there are not more than ``period`` closes.
    """
    if len(closes) <= period:
        return None

    gains = 0.0
    losses = 0.0
    for i in range(1, period + 1):
        diff = closes[i] - closes[i - 1]
        if diff > 0:
            gains += diff
        else:
            losses -= diff

    avg_gain = gains / period
    avg_loss = losses / period

    for i in range(period + 1, len(closes)):
        diff = closes[i] - closes[i - 1]
        gain = diff if diff > 0 else 0.0
        loss = -diff if diff < 0 else 0.0
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100 - 100 / (1 + rs)


def macd(
    closes: list[float],
    fast: int = 12,
    slow: int = 26,
    signal_period: int = 9,
) -> MacdReading | None:
    """MACD line (EMA fast - EMA slow), signal (EMA of the line) and histogram.

    The fast and slow EMA series are aligned on their tails before
    subtraction. Returns None if any of the three EMAs cannot be seeded.
    """
    fast_ema = ema_series(closes, fast)
    slow_ema = ema_series(closes, slow)
    if not fast_ema or not slow_ema:
        return None

    length = min(len(fast_ema), len(slow_ema))
    line = [f - s for f, s in zip(fast_ema[-length:], slow_ema[-length:])]

    signal_series = ema_series(line, signal_period)
    if not signal_series:
        return None

    latest = line[-1]
    signal = signal_series[-1]
    return MacdReading(line=latest, signal=signal, histogram=latest - signal)
