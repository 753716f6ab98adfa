"""Technical indicator engine.

Pure, stateless functions over float series plus the composite
``calculate_indicators`` snapshot consumed by the confluence scorer.
"""

from alertbot.indicators.engine import calculate_indicators
from alertbot.indicators.models import (
    MIN_SERIES_LENGTH,
    BollingerBands,
    IndicatorSnapshot,
    MacdReading,
    OHLCVBar,
    OHLCVSeries,
)
from alertbot.indicators.momentum import macd, rsi
from alertbot.indicators.moving_average import ema_series, sma
from alertbot.indicators.volatility import atr, bollinger, true_ranges
from alertbot.indicators.volume import volume_ratio

__all__ = [
    "MIN_SERIES_LENGTH",
    "BollingerBands",
    "IndicatorSnapshot",
    "MacdReading",
    "OHLCVBar",
    "OHLCVSeries",
    "atr",
    "bollinger",
    "calculate_indicators",
    "ema_series",
    "macd",
    "rsi",
    "sma",
    "true_ranges",
    "volume_ratio",
]
