"""Simple and exponential moving averages."""


def sma(values: list[float], period: int) -> float | None:
    """Mean of the last ``period`` values, or None if the series is shorter."""
    if period <= 0 or len(values) < period:
        return None
    return sum(values[-period:]) / period


def ema_series(values: list[float], period: int) -> list[float]:
    """Exponential moving average series seeded by an SMA.

    The first output is the simple average of the first ``period`` values;
    each later value uses the smoothing constant k = 2 / (period + 1):

        EMA_t = value_t * k + EMA_{t-1} * (1 - k)

    Args:
        values: Ordered values (oldest first).
        period: Smoothing period.

    Returns:
        ``len(values) - period + 1`` EMA values aligned to the tail of
        ``values``. Empty list if the input is shorter than ``period``.
    """
    if period <= 0 or len(values) < period:
        return []

    k = 2 / (period + 1)
    prev = sum(values[:period]) / period
    out = [prev]
    for value in values[period:]:
        prev = value * k + prev * (1 - k)
        out.append(prev)
    return out
