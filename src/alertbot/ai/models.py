"""AI review verdict models."""

from dataclasses import dataclass, field
from enum import Enum

from alertbot.models import AlertCandidate, Confidence


class ValidationMode(str, Enum):
    """How a verdict was reached."""

    VALIDATED = "validated"  # reviewer confirmed
    REJECTED = "rejected"  # reviewer vetoed
    FALLBACK = "fallback"  # reviewer disabled or not configured
    FALLBACK_ERROR = "fallback_error"  # reviewer failed, timed out or returned junk

    @property
    def is_fallback(self) -> bool:
        return self in (ValidationMode.FALLBACK, ValidationMode.FALLBACK_ERROR)


@dataclass
class ReviewContext:
    """Extra material shown to the reviewer alongside the technicals."""

    news: list[dict] = field(default_factory=list)
    fundamentals: dict = field(default_factory=dict)
    previous_alerts: list[dict] = field(default_factory=list)


@dataclass
class ValidationVerdict:
    """Result of reviewing one candidate. Always usable by the engine."""

    mode: ValidationMode
    confirm: bool
    confidence: Confidence
    adjusted_stop_loss: float | None
    adjusted_target: float | None
    reasoning: str
    action: str | None = None
    model: str | None = None
    thesis: dict | None = None

    @property
    def ai_validated(self) -> bool:
        """True when a reviewer actually produced the verdict."""
        return not self.mode.is_fallback

    @classmethod
    def fallback(
        cls,
        candidate: AlertCandidate,
        reason: str,
        mode: ValidationMode = ValidationMode.FALLBACK,
        model: str | None = None,
    ) -> "ValidationVerdict":
        """Confirm with one-notch-lower confidence and untouched levels."""
        return cls(
            mode=mode,
            confirm=True,
            confidence=candidate.confidence.downgrade(),
            adjusted_stop_loss=candidate.stop_loss,
            adjusted_target=candidate.take_profit,
            reasoning=reason,
            action=None,
            model=model,
            thesis=None,
        )
