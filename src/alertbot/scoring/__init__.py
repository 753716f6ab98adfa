"""Confluence scoring and adaptive stop sizing."""

from alertbot.scoring.confluence import STRONG_THRESHOLD, calculate_confluence
from alertbot.scoring.models import (
    ConfluenceConfig,
    ConfluenceResult,
    SignalReading,
    StopLevels,
    merge_config,
)
from alertbot.scoring.stops import atr_multiplier, compute_adaptive_stops

__all__ = [
    "STRONG_THRESHOLD",
    "ConfluenceConfig",
    "ConfluenceResult",
    "SignalReading",
    "StopLevels",
    "atr_multiplier",
    "calculate_confluence",
    "compute_adaptive_stops",
    "merge_config",
]
