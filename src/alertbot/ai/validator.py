"""AI validation adapter with a deterministic local fallback.

validate_signal always returns a usable ValidationVerdict:
- reviewer disabled or key missing     -> FALLBACK
- reviewer error, timeout or bad JSON  -> FALLBACK_ERROR
- reviewer reply with confirm == true  -> VALIDATED
- any other parsed reply               -> REJECTED

Fallback verdicts confirm the candidate with its confidence downgraded one
notch and its stop/target untouched.
"""

from __future__ import annotations

import asyncio
import json
import math
from typing import Any

from alertbot.ai.models import ReviewContext, ValidationMode, ValidationVerdict
from alertbot.ai.prompts import SYSTEM_PROMPT, build_user_prompt
from alertbot.ai.reviewer import SignalReviewer
from alertbot.exceptions import ReviewerError
from alertbot.logging import get_logger
from alertbot.models import AlertCandidate, Confidence
from alertbot.scoring.models import ConfluenceConfig

logger = get_logger(__name__)


def _first_balanced_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` block, honouring JSON strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        start = text.find("{", start + 1)
    return None


def extract_json_block(text: str | None) -> dict | None:
    """Parse reviewer output that may wrap its JSON object in prose.

    Tries the whole text first, then the first balanced ``{...}`` block.
    Returns None when no JSON object can be recovered.
    """
    raw = (text or "").strip()
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    block = _first_balanced_object(raw)
    if block is None:
        return None
    try:
        parsed = json.loads(block)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _finite(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    return out if math.isfinite(out) else None


class SignalValidator:
    """Bounded-time AI review of alert candidates.

    Args:
        reviewer: Reviewer to call. None disables review.
        enabled: Master switch for AI review.
        configured: Whether the reviewer has credentials.
        timeout_seconds: Upper bound for one reviewer call. The call is
            cancelled when it elapses.
    """

    def __init__(
        self,
        reviewer: SignalReviewer | None,
        enabled: bool = True,
        configured: bool = True,
        timeout_seconds: float = 9.5,
    ) -> None:
        self._reviewer = reviewer
        self._enabled = enabled
        self._configured = configured and reviewer is not None
        self._timeout = timeout_seconds

    @property
    def active(self) -> bool:
        return self._enabled and self._configured

    @property
    def model(self) -> str | None:
        return self._reviewer.model if self._reviewer is not None else None

    async def validate_signal(
        self,
        candidate: AlertCandidate,
        user_config: ConfluenceConfig,
        context: ReviewContext | None = None,
    ) -> ValidationVerdict:
        """Review one candidate. Never raises for reviewer failures."""
        if not self._enabled:
            return ValidationVerdict.fallback(candidate, "AI_DISABLED")
        if not self._configured:
            return ValidationVerdict.fallback(candidate, "AI_KEY_MISSING")

        assert self._reviewer is not None
        prompt = build_user_prompt(candidate, user_config, context or ReviewContext())

        try:
            text = await asyncio.wait_for(
                self._reviewer.complete(SYSTEM_PROMPT, prompt),
                timeout=self._timeout,
            )
        except TimeoutError:
            logger.warning("ai_review_timeout", symbol=candidate.symbol, timeout=self._timeout)
            return ValidationVerdict.fallback(
                candidate, "AI_TIMEOUT", ValidationMode.FALLBACK_ERROR, self.model
            )
        except ReviewerError as e:
            logger.warning("ai_review_failed", symbol=candidate.symbol, error=str(e))
            return ValidationVerdict.fallback(
                candidate, str(e), ValidationMode.FALLBACK_ERROR, self.model
            )
        except Exception as e:
            logger.warning(
                "ai_review_unexpected_error",
                symbol=candidate.symbol,
                error=str(e),
                exc_info=True,
            )
            return ValidationVerdict.fallback(
                candidate, "AI_FALLBACK", ValidationMode.FALLBACK_ERROR, self.model
            )

        parsed = extract_json_block(text)
        if parsed is None:
            logger.warning("ai_review_invalid_json", symbol=candidate.symbol)
            return ValidationVerdict.fallback(
                candidate, "AI_INVALID_JSON", ValidationMode.FALLBACK_ERROR, self.model
            )

        return self._verdict_from_reply(candidate, parsed)

    def _verdict_from_reply(self, candidate: AlertCandidate, parsed: dict) -> ValidationVerdict:
        stop = _finite(parsed.get("adjustedStopLoss"))
        target = _finite(parsed.get("adjustedTarget"))
        reasoning = str(parsed.get("reasoning") or parsed.get("thesis") or "")
        action = str(parsed["action"]).upper() if parsed.get("action") else None

        if parsed.get("confirm") is True:
            return ValidationVerdict(
                mode=ValidationMode.VALIDATED,
                confirm=True,
                confidence=Confidence.parse(parsed.get("confidence"), candidate.confidence),
                adjusted_stop_loss=stop if stop is not None else candidate.stop_loss,
                adjusted_target=target if target is not None else candidate.take_profit,
                reasoning=reasoning,
                action=action,
                model=self.model,
                thesis=parsed,
            )

        return ValidationVerdict(
            mode=ValidationMode.REJECTED,
            confirm=False,
            confidence=Confidence.parse(parsed.get("confidence"), Confidence.LOW),
            adjusted_stop_loss=stop if stop is not None else candidate.stop_loss,
            adjusted_target=target if target is not None else candidate.take_profit,
            reasoning=reasoning or "AI_REJECTED",
            action=action,
            model=self.model,
            thesis=parsed,
        )
