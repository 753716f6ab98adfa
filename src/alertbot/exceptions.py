"""Custom exceptions for the alert engine.

Provider, reviewer and data errors live here to avoid circular imports
between the market client, the AI adapter and the engine.
"""


class AlertBotError(Exception):
    """Base exception for all alert engine errors."""


class ProviderError(AlertBotError):
    """Raised when the market data provider call fails.

    Carries the HTTP status (None for transport failures), the request
    path and a short machine-readable code.
    """

    code = "PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        status: int | None = None,
        path: str | None = None,
        retry_after: float = 0.0,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.path = path
        self.retry_after = retry_after


class ProviderHTTPError(ProviderError):
    """Raised on a non-2xx response that is neither a rate limit nor a 403."""

    code = "PROVIDER_HTTP_ERROR"


class ProviderRateLimitError(ProviderError):
    """Raised when the provider is still rate limiting after the cooldown retries."""

    code = "PROVIDER_RATE_LIMIT"


class EndpointForbiddenError(ProviderError):
    """Raised when an endpoint is not covered by the current plan (plain 403)."""

    code = "PROVIDER_ENDPOINT_FORBIDDEN"


class MissingApiKeyError(AlertBotError):
    """Raised when the market data provider key is not configured."""


class ReviewerError(AlertBotError):
    """Raised when the AI reviewer call fails or returns unusable output."""


class InsufficientDataError(AlertBotError):
    """Raised when a price series is too short or malformed for indicators."""
