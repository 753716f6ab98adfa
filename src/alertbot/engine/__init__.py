"""Alert engine, policy, snapshots and outcome evaluation."""

from alertbot.engine.alert_engine import (
    AlertEngine,
    CycleMetrics,
    CycleOptions,
    GlobalCycleResult,
    UserCycleResult,
)
from alertbot.engine.outcomes import OutcomeCycleResult, OutcomeEvaluator, classify_outcome
from alertbot.engine.policy import AlertPolicy, day_key
from alertbot.engine.snapshots import AssetSnapshot, SnapshotBuilder, build_asset_snapshot

__all__ = [
    "AlertEngine",
    "AlertPolicy",
    "AssetSnapshot",
    "CycleMetrics",
    "CycleOptions",
    "GlobalCycleResult",
    "OutcomeCycleResult",
    "OutcomeEvaluator",
    "SnapshotBuilder",
    "UserCycleResult",
    "build_asset_snapshot",
    "classify_outcome",
    "day_key",
]
