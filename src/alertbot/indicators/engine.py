"""Composite indicator snapshot over an OHLCV series."""

from alertbot.indicators.models import MIN_SERIES_LENGTH, IndicatorSnapshot, OHLCVSeries
from alertbot.indicators.momentum import macd, rsi
from alertbot.indicators.moving_average import sma
from alertbot.indicators.volatility import atr, bollinger
from alertbot.indicators.volume import volume_ratio


def calculate_indicators(series: OHLCVSeries) -> IndicatorSnapshot | None:
    """Compute every indicator for the latest bar of ``series``.

    Returns None for series shorter than MIN_SERIES_LENGTH so no partial
    readings surface. Individual fields may still be None when their own
    window is longer than the series (sma200 needs 200 closes).
    """
    if len(series) < MIN_SERIES_LENGTH:
        return None

    closes = series.closes
    return IndicatorSnapshot(
        current_price=closes[-1],
        rsi=rsi(closes, 14),
        macd=macd(closes),
        bollinger=bollinger(closes, 20, 2.0),
        sma50=sma(closes, 50),
        sma200=sma(closes, 200),
        atr=atr(series.highs, series.lows, closes, 14),
        volume_ratio=volume_ratio(series.volumes, 20),
    )
