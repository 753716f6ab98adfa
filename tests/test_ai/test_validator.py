"""Tests for SignalValidator verdicts, JSON recovery and prompt rendering.

Verifies:
- Disabled or unconfigured review falls back with confidence downgraded
- Reviewer timeouts, errors and unparseable replies fall back with reasons
- confirm=true validates and applies adjusted levels; anything else rejects
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from alertbot.ai.models import ReviewContext, ValidationMode
from alertbot.ai.prompts import build_user_prompt
from alertbot.ai.reviewer import SignalReviewer
from alertbot.ai.validator import SignalValidator, extract_json_block
from alertbot.exceptions import ReviewerError
from alertbot.models import AlertCandidate, AlertType, Confidence, Recommendation
from alertbot.scoring.models import ConfluenceConfig


@pytest.fixture
def candidate() -> AlertCandidate:
    return AlertCandidate(
        user_id=1,
        symbol="AAPL",
        name="Apple",
        type=AlertType.OPPORTUNITY,
        recommendation=Recommendation.STRONG_BUY,
        confidence=Confidence.HIGH,
        price_at_alert=100.0,
        stop_loss=90.0,
        take_profit=125.0,
        confluence_bull=5,
        confluence_bear=0,
        signals=[{"indicator": "RSI", "type": "bull", "detail": "Oversold (25.0)"}],
        snapshot={"rsi": 25.0, "atr": 4.0},
    )


@pytest.fixture
def reviewer() -> AsyncMock:
    mock = AsyncMock(spec=SignalReviewer)
    mock.model = "test-model"
    return mock


def _validator(reviewer: AsyncMock | None, **kwargs: object) -> SignalValidator:
    return SignalValidator(reviewer, **kwargs)  # type: ignore[arg-type]


# ──────────────────────────────────────────────
# Local fallback
# ──────────────────────────────────────────────


class TestFallback:
    """Review unavailable: confirm with downgraded confidence."""

    @pytest.mark.asyncio
    async def test_key_missing(self, candidate: AlertCandidate, reviewer: AsyncMock) -> None:
        validator = _validator(reviewer, configured=False)
        verdict = await validator.validate_signal(candidate, ConfluenceConfig())

        assert verdict.mode is ValidationMode.FALLBACK
        assert verdict.confirm is True
        assert verdict.confidence is Confidence.MEDIUM
        assert verdict.adjusted_stop_loss == 90.0
        assert verdict.adjusted_target == 125.0
        assert verdict.reasoning == "AI_KEY_MISSING"
        assert not verdict.ai_validated
        reviewer.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_reviewer_counts_as_unconfigured(self, candidate: AlertCandidate) -> None:
        verdict = await _validator(None).validate_signal(candidate, ConfluenceConfig())
        assert verdict.reasoning == "AI_KEY_MISSING"

    @pytest.mark.asyncio
    async def test_disabled(self, candidate: AlertCandidate, reviewer: AsyncMock) -> None:
        validator = _validator(reviewer, enabled=False)
        verdict = await validator.validate_signal(candidate, ConfluenceConfig())
        assert verdict.mode is ValidationMode.FALLBACK
        assert verdict.reasoning == "AI_DISABLED"
        assert not validator.active

    @pytest.mark.asyncio
    async def test_timeout(self, candidate: AlertCandidate, reviewer: AsyncMock) -> None:
        async def slow(*_: object) -> str:
            await asyncio.sleep(5)
            return "{}"

        reviewer.complete.side_effect = slow
        validator = _validator(reviewer, timeout_seconds=0.01)

        verdict = await validator.validate_signal(candidate, ConfluenceConfig())

        assert verdict.mode is ValidationMode.FALLBACK_ERROR
        assert verdict.reasoning == "AI_TIMEOUT"
        assert verdict.confirm is True
        assert verdict.model == "test-model"

    @pytest.mark.asyncio
    async def test_reviewer_error(self, candidate: AlertCandidate, reviewer: AsyncMock) -> None:
        reviewer.complete.side_effect = ReviewerError("AI_HTTP_500")
        verdict = await _validator(reviewer).validate_signal(candidate, ConfluenceConfig())
        assert verdict.mode is ValidationMode.FALLBACK_ERROR
        assert verdict.reasoning == "AI_HTTP_500"

    @pytest.mark.asyncio
    async def test_unexpected_error(self, candidate: AlertCandidate, reviewer: AsyncMock) -> None:
        reviewer.complete.side_effect = RuntimeError("boom")
        verdict = await _validator(reviewer).validate_signal(candidate, ConfluenceConfig())
        assert verdict.mode is ValidationMode.FALLBACK_ERROR
        assert verdict.reasoning == "AI_FALLBACK"

    @pytest.mark.asyncio
    async def test_invalid_json(self, candidate: AlertCandidate, reviewer: AsyncMock) -> None:
        reviewer.complete.return_value = "I think this looks fine."
        verdict = await _validator(reviewer).validate_signal(candidate, ConfluenceConfig())
        assert verdict.mode is ValidationMode.FALLBACK_ERROR
        assert verdict.reasoning == "AI_INVALID_JSON"
        assert verdict.confidence is Confidence.MEDIUM


# ──────────────────────────────────────────────
# Parsed replies
# ──────────────────────────────────────────────


class TestReviewerReplies:
    """Confirmed and vetoed candidates."""

    @pytest.mark.asyncio
    async def test_confirm_wrapped_in_prose(self, candidate: AlertCandidate, reviewer: AsyncMock) -> None:
        reviewer.complete.return_value = (
            'Sure, here it is: {"confirm": true, "confidence": "medium", "action": "buy", '
            '"adjustedStopLoss": 92.5, "adjustedTarget": 118, "reasoning": "Trend {intact}"} Thanks.'
        )

        verdict = await _validator(reviewer).validate_signal(candidate, ConfluenceConfig())

        assert verdict.mode is ValidationMode.VALIDATED
        assert verdict.ai_validated
        assert verdict.confidence is Confidence.MEDIUM
        assert verdict.adjusted_stop_loss == 92.5
        assert verdict.adjusted_target == 118.0
        assert verdict.action == "BUY"
        assert verdict.reasoning == "Trend {intact}"
        assert verdict.model == "test-model"

    @pytest.mark.asyncio
    async def test_confirm_keeps_levels_when_not_numbers(
        self, candidate: AlertCandidate, reviewer: AsyncMock
    ) -> None:
        reviewer.complete.return_value = (
            '{"confirm": true, "adjustedStopLoss": "n/a", "adjustedTarget": null}'
        )
        verdict = await _validator(reviewer).validate_signal(candidate, ConfluenceConfig())
        assert verdict.adjusted_stop_loss == 90.0
        assert verdict.adjusted_target == 125.0
        assert verdict.confidence is Confidence.HIGH

    @pytest.mark.asyncio
    async def test_reject(self, candidate: AlertCandidate, reviewer: AsyncMock) -> None:
        reviewer.complete.return_value = '{"confirm": false, "reasoning": "Earnings tomorrow"}'

        verdict = await _validator(reviewer).validate_signal(candidate, ConfluenceConfig())

        assert verdict.mode is ValidationMode.REJECTED
        assert verdict.confirm is False
        assert verdict.reasoning == "Earnings tomorrow"
        assert verdict.confidence is Confidence.LOW

    @pytest.mark.asyncio
    async def test_truthy_string_is_not_confirmation(
        self, candidate: AlertCandidate, reviewer: AsyncMock
    ) -> None:
        reviewer.complete.return_value = '{"confirm": "yes"}'
        verdict = await _validator(reviewer).validate_signal(candidate, ConfluenceConfig())
        assert verdict.mode is ValidationMode.REJECTED
        assert verdict.reasoning == "AI_REJECTED"


class TestExtractJsonBlock:
    """Recovery of a JSON object from free text."""

    def test_plain_object(self) -> None:
        assert extract_json_block('{"a": 1}') == {"a": 1}

    def test_braces_inside_strings(self) -> None:
        assert extract_json_block('note {"a": "}{", "b": 2} end') == {"a": "}{", "b": 2}

    def test_first_block_must_parse(self) -> None:
        assert extract_json_block("{not json} then {\"ok\": true}") is None

    @pytest.mark.parametrize("text", [None, "", "   ", "[1, 2]", "no braces", "{unbalanced"])
    def test_nothing_recoverable(self, text: str | None) -> None:
        assert extract_json_block(text) is None


class TestPrompt:
    """User prompt rendering."""

    def test_headlines_capped_at_five(self, candidate: AlertCandidate) -> None:
        context = ReviewContext(news=[{"headline": f"story {i}"} for i in range(8)])
        prompt = build_user_prompt(candidate, ConfluenceConfig(), context)
        assert "story 4" in prompt
        assert "story 5" not in prompt
        assert "SIGNAL: STRONG BUY for AAPL (Apple)" in prompt

    def test_empty_context(self, candidate: AlertCandidate) -> None:
        prompt = build_user_prompt(candidate, ConfluenceConfig(), ReviewContext())
        assert "NEWS: no news" in prompt


class TestConfidence:
    """Confidence helpers."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(Confidence.HIGH, Confidence.MEDIUM), (Confidence.MEDIUM, Confidence.LOW), (Confidence.LOW, Confidence.LOW)],
    )
    def test_downgrade(self, value: Confidence, expected: Confidence) -> None:
        assert value.downgrade() is expected

    def test_parse(self) -> None:
        assert Confidence.parse(" HIGH ") is Confidence.HIGH
        assert Confidence.parse("bogus", Confidence.MEDIUM) is Confidence.MEDIUM
        assert Confidence.parse(None) is Confidence.LOW
