"""Prompt construction for the signal reviewer."""

import json

from alertbot.ai.models import ReviewContext
from alertbot.models import AlertCandidate
from alertbot.scoring.models import ConfluenceConfig

SYSTEM_PROMPT = (
    "You are the review stage of a technical alert engine. "
    "Confirm or discard technical signals with a conservative approach. "
    "Reply with valid JSON only, no markdown and no extra text."
)

RESPONSE_SCHEMA = (
    '{"confirm":boolean,"confidence":"high|medium|low","action":"BUY|SELL|HOLD",'
    '"thesis":"string","catalysts":["string"],"risks":["string"],'
    '"technicalView":"string","fundamentalView":"string",'
    '"adjustedStopLoss":number,"adjustedTarget":number,'
    '"timeframe":"string","reasoning":"string"}'
)

_MAX_HEADLINES = 5
_MAX_PREVIOUS_ALERTS = 5


def _fmt(value: object) -> str:
    return "n/a" if value is None else str(value)


def build_user_prompt(
    candidate: AlertCandidate,
    user_config: ConfluenceConfig,
    context: ReviewContext,
) -> str:
    """Render the candidate, its context and the expected JSON schema."""
    technical = candidate.snapshot or {}
    headlines = [
        f"{i}. {item.get('headline') or item.get('title') or ''}".strip()
        for i, item in enumerate(context.news[:_MAX_HEADLINES], 1)
    ]
    signals = " | ".join(
        f"{s.get('indicator', 'N/A')}:{s.get('type', 'n/a')}:{s.get('detail', '')}"
        for s in candidate.signals
    )

    return "\n".join(
        [
            f"SIGNAL: {candidate.recommendation.value} for {candidate.symbol} ({candidate.name})",
            f"PRICE: {candidate.price_at_alert}, STOP: {_fmt(candidate.stop_loss)}, "
            f"TARGET: {_fmt(candidate.take_profit)}",
            f"TECHNICALS: RSI={_fmt(technical.get('rsi'))}, ATR={_fmt(technical.get('atr'))}, "
            f"SMA50={_fmt(technical.get('sma50'))}, SMA200={_fmt(technical.get('sma200'))}",
            f"CONFLUENCE: bull={candidate.confluence_bull}, bear={candidate.confluence_bear}",
            f"SIGNALS: {signals or 'n/a'}",
            f"FUNDAMENTALS: {json.dumps(context.fundamentals, default=str)}",
            f"NEWS: {' || '.join(headlines) or 'no news'}",
            f"ALERT HISTORY: {json.dumps(context.previous_alerts[:_MAX_PREVIOUS_ALERTS], default=str)}",
            f"PROFILE: horizon={user_config.horizon}, riskProfile={user_config.risk_profile}",
            "Reply with this exact JSON:",
            RESPONSE_SCHEMA,
        ]
    )
