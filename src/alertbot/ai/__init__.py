"""Optional AI review of candidate signals with graceful local fallback."""

from alertbot.ai.models import ReviewContext, ValidationMode, ValidationVerdict
from alertbot.ai.reviewer import AnthropicReviewer, SignalReviewer
from alertbot.ai.validator import SignalValidator, extract_json_block

__all__ = [
    "AnthropicReviewer",
    "ReviewContext",
    "SignalReviewer",
    "SignalValidator",
    "ValidationMode",
    "ValidationVerdict",
    "extract_json_block",
]
