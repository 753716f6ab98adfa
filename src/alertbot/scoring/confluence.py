"""Deterministic confluence scoring.

Every rule contributes a fixed, auditable number of points to the bull or
bear side:

    RSI < oversold           +2 bull   (else RSI < 40:  +1 bull)
    RSI > overbought         +2 bear   (else RSI > 60:  +1 bear)
    MACD line > signal       +2 bull   (else +2 bear)
    MACD histogram > 0 / < 0 +1 bull / +1 bear
    price <= lower band      +2 bull
    price >= upper band      +2 bear
    price > SMA50 > SMA200   +1 bull   (mirror: +1 bear)
    volume ratio > threshold +1 toward the day's price change

net = bull - bear decides the recommendation. Missing MACD or Bollinger
input short-circuits to HOLD with net 0.
"""

from alertbot.indicators.models import IndicatorSnapshot
from alertbot.models import Confidence, Direction, Recommendation
from alertbot.scoring.models import ConfluenceConfig, ConfluenceResult, SignalReading

#: Net score at or beyond which a recommendation becomes STRONG.
STRONG_THRESHOLD = 4


def _hold(signals: list[SignalReading] | None = None, bull: int = 0, bear: int = 0) -> ConfluenceResult:
    return ConfluenceResult(
        recommendation=Recommendation.HOLD,
        direction=Direction.NONE,
        net=bull - bear,
        bull=bull,
        bear=bear,
        confidence=Confidence.LOW,
        signals=signals or [],
    )


def calculate_confluence(
    indicators: IndicatorSnapshot | None,
    change_percent: float,
    config: ConfluenceConfig,
) -> ConfluenceResult:
    """Score an indicator snapshot into a recommendation.

    Args:
        indicators: Latest indicator readings. None means no data.
        change_percent: The day's price change in percent, used to orient
            the volume-anomaly point.
        config: User thresholds.

    Returns:
        ConfluenceResult with an explicit direction (BULL for BUY labels,
        BEAR for SELL labels, NONE for HOLD).
    """
    if indicators is None or indicators.macd is None or indicators.bollinger is None:
        return _hold()

    signals: list[SignalReading] = []

    def add(indicator: str, direction: Direction, detail: str, points: int) -> None:
        signals.append(SignalReading(indicator, direction, detail, points))

    rsi = indicators.rsi
    if rsi is not None:
        if rsi < config.rsi_oversold:
            add("RSI", Direction.BULL, f"Oversold ({rsi:.1f})", 2)
        elif rsi < 40:
            add("RSI", Direction.BULL, f"Low RSI ({rsi:.1f})", 1)

        if rsi > config.rsi_overbought:
            add("RSI", Direction.BEAR, f"Overbought ({rsi:.1f})", 2)
        elif rsi > 60:
            add("RSI", Direction.BEAR, f"High RSI ({rsi:.1f})", 1)

    macd = indicators.macd
    if macd.line > macd.signal:
        add("MACD", Direction.BULL, "Bullish crossover", 2)
    else:
        add("MACD", Direction.BEAR, "Bearish crossover", 2)

    if macd.histogram > 0:
        add("MACD", Direction.BULL, "Positive histogram", 1)
    elif macd.histogram < 0:
        add("MACD", Direction.BEAR, "Negative histogram", 1)

    price = indicators.current_price
    bands = indicators.bollinger
    if price <= bands.lower:
        add("BOLL", Direction.BULL, "Price at lower band", 2)
    if price >= bands.upper:
        add("BOLL", Direction.BEAR, "Price at upper band", 2)

    sma50, sma200 = indicators.sma50, indicators.sma200
    if sma50 is not None and sma200 is not None:
        if price > sma50 > sma200:
            add("SMA", Direction.BULL, "Uptrend (SMA50 > SMA200)", 1)
        if price < sma50 < sma200:
            add("SMA", Direction.BEAR, "Downtrend (SMA50 < SMA200)", 1)

    ratio = indicators.volume_ratio
    if ratio is not None and ratio > config.volume_threshold:
        direction = Direction.BULL if change_percent >= 0 else Direction.BEAR
        add("VOL", direction, f"Abnormal volume x{ratio:.2f}", 1)

    bull = sum(s.points for s in signals if s.direction is Direction.BULL)
    bear = sum(s.points for s in signals if s.direction is Direction.BEAR)
    net = bull - bear

    if net >= STRONG_THRESHOLD:
        label, direction, confidence = Recommendation.STRONG_BUY, Direction.BULL, Confidence.HIGH
    elif net >= config.min_confluence:
        label, direction, confidence = Recommendation.BUY, Direction.BULL, Confidence.MEDIUM
    elif net <= -STRONG_THRESHOLD:
        label, direction, confidence = Recommendation.STRONG_SELL, Direction.BEAR, Confidence.HIGH
    elif net <= -config.min_confluence:
        label, direction, confidence = Recommendation.SELL, Direction.BEAR, Confidence.MEDIUM
    else:
        return _hold(signals, bull, bear)

    return ConfluenceResult(
        recommendation=label,
        direction=direction,
        net=net,
        bull=bull,
        bear=bear,
        confidence=confidence,
        signals=signals,
    )
