"""Confluence scoring data models."""

import math
from dataclasses import dataclass, field
from typing import Any

from alertbot.models import Confidence, Direction, Recommendation


@dataclass
class ConfluenceConfig:
    """User-tunable scoring thresholds."""

    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    volume_threshold: float = 2.0
    min_confluence: int = 2
    horizon: str = "mediano"
    risk_profile: str = "moderado"
    max_alerts_per_day: int | None = None
    sectors: list[str] = field(default_factory=list)


def _number(value: Any, default: float) -> float:
    try:
        out = float(value)
    except (TypeError, ValueError):
        return default
    return out if math.isfinite(out) else default


def merge_config(row: dict | None) -> ConfluenceConfig:
    """Overlay a user_configs row onto the default thresholds.

    Missing or non-numeric columns keep their defaults.
    """
    row = row or {}
    defaults = ConfluenceConfig()
    max_per_day = row.get("max_alerts_per_day")
    sectors = row.get("sectors")
    return ConfluenceConfig(
        rsi_oversold=_number(row.get("rsi_os"), defaults.rsi_oversold),
        rsi_overbought=_number(row.get("rsi_ob"), defaults.rsi_overbought),
        volume_threshold=_number(row.get("vol_thresh"), defaults.volume_threshold),
        min_confluence=int(_number(row.get("min_confluence"), defaults.min_confluence)),
        horizon=str(row.get("horizon") or defaults.horizon),
        risk_profile=str(row.get("risk_profile") or defaults.risk_profile),
        max_alerts_per_day=int(max_per_day) if max_per_day is not None else None,
        sectors=list(sectors) if isinstance(sectors, (list, tuple)) else [],
    )


@dataclass
class SignalReading:
    """One indicator's contribution with a human explanation."""

    indicator: str
    direction: Direction
    detail: str
    points: int

    def to_dict(self) -> dict:
        return {
            "indicator": self.indicator,
            "type": self.direction.value,
            "detail": self.detail,
            "points": self.points,
        }


@dataclass
class ConfluenceResult:
    """Outcome of scoring one indicator snapshot."""

    recommendation: Recommendation
    direction: Direction
    net: int
    bull: int
    bear: int
    confidence: Confidence
    signals: list[SignalReading] = field(default_factory=list)

    @property
    def actionable(self) -> bool:
        return self.direction is not Direction.NONE


@dataclass
class StopLevels:
    """Adaptive stop-loss / take-profit pair. Both None when unavailable."""

    stop_loss: float | None
    take_profit: float | None
    multiplier: float | None = None

    @property
    def usable(self) -> bool:
        return self.stop_loss is not None
