"""Shared data models for the alert engine.

Prices here are analytic readings (indicator inputs and alert levels), not
order quantities, so they are plain floats.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Direction(str, Enum):
    """Directional bias produced by the confluence scorer."""

    BULL = "bull"
    BEAR = "bear"
    NONE = "none"


class AlertType(str, Enum):
    """Persisted alert category."""

    OPPORTUNITY = "opportunity"
    BEARISH = "bearish"
    STOP_LOSS = "stop_loss"

    @classmethod
    def from_direction(cls, direction: Direction) -> "AlertType | None":
        """Map a scorer direction to an alert type. NONE produces no alert."""
        if direction is Direction.BULL:
            return cls.OPPORTUNITY
        if direction is Direction.BEAR:
            return cls.BEARISH
        return None


class Recommendation(str, Enum):
    """Categorical confluence recommendation."""

    STRONG_BUY = "STRONG BUY"
    BUY = "BUY"
    HOLD = "HOLD"
    SELL = "SELL"
    STRONG_SELL = "STRONG SELL"
    STOP_LOSS = "STOP LOSS"


class Confidence(str, Enum):
    """Confidence label attached to a recommendation."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    def downgrade(self) -> "Confidence":
        """One notch lower: high -> medium -> low -> low."""
        if self is Confidence.HIGH:
            return Confidence.MEDIUM
        return Confidence.LOW

    @classmethod
    def parse(cls, value: Any, default: "Confidence | None" = None) -> "Confidence":
        """Parse a free-form label, falling back to ``default`` (LOW if unset)."""
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value == text:
                return member
        return default if default is not None else cls.LOW


class Outcome(str, Enum):
    """Alert resolution status."""

    OPEN = "open"
    WIN = "win"
    LOSS = "loss"


class SnapshotSource(str, Enum):
    """Where an asset snapshot's prices came from."""

    PROVIDER = "provider"
    SYNTHETIC = "synthetic"
    OVERRIDE = "override"


@dataclass
class WatchlistItem:
    """A symbol a user follows."""

    symbol: str
    name: str | None = None
    category: str | None = None


@dataclass
class Position:
    """An open holding watched for stop-loss breaches."""

    id: int
    symbol: str
    buy_price: float
    quantity: float
    name: str | None = None
    category: str | None = None


@dataclass
class AlertCandidate:
    """A scored signal (or stop-loss breach) about to go through the policy."""

    user_id: int
    symbol: str
    name: str
    type: AlertType
    recommendation: Recommendation
    confidence: Confidence
    price_at_alert: float
    stop_loss: float | None
    take_profit: float | None
    confluence_bull: int = 0
    confluence_bear: int = 0
    signals: list[dict] = field(default_factory=list)
    snapshot: dict = field(default_factory=dict)
    category: str | None = None

    @property
    def direction(self) -> Direction:
        """Cooldown direction key for this candidate."""
        if self.type is AlertType.BEARISH:
            return Direction.BEAR
        return Direction.BULL


@dataclass
class Alert:
    """A persisted alert row."""

    id: int
    user_id: int
    symbol: str
    type: AlertType
    recommendation: str
    confidence: str
    price_at_alert: float
    stop_loss: float | None
    take_profit: float | None
    created_at: float  # Unix seconds
    name: str | None = None
    category: str | None = None
    notified: bool = False
    outcome: Outcome = Outcome.OPEN
    outcome_price: float | None = None
    outcome_date: float | None = None
    ai_mode: str | None = None

    def to_payload(self) -> dict:
        """Serializable form used for broadcast and push delivery."""
        return {
            "id": self.id,
            "userId": self.user_id,
            "symbol": self.symbol,
            "name": self.name,
            "type": self.type.value,
            "recommendation": self.recommendation,
            "confidence": self.confidence,
            "priceAtAlert": self.price_at_alert,
            "stopLoss": self.stop_loss,
            "takeProfit": self.take_profit,
            "createdAt": self.created_at,
            "aiMode": self.ai_mode,
        }


@dataclass
class CooldownRecord:
    """Rejection counter and optional block for a (symbol, direction) pair."""

    symbol: str
    direction: Direction
    rejection_count: int = 0
    cooldown_until: float | None = None  # Unix seconds

    def is_active(self, now: float) -> bool:
        return self.cooldown_until is not None and self.cooldown_until > now
