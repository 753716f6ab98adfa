"""Chat-completion reviewers that return free text for the validator to parse."""

from abc import ABC, abstractmethod

import aiohttp

from alertbot.config import AISettings
from alertbot.exceptions import ReviewerError
from alertbot.logging import get_logger

logger = get_logger(__name__)


class SignalReviewer(ABC):
    """One system+user prompt in, free text out."""

    model: str | None = None

    @abstractmethod
    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Return the reviewer's raw text reply. Raise ReviewerError on failure."""
        ...

    async def close(self) -> None:
        """Release network resources."""


class AnthropicReviewer(SignalReviewer):
    """Anthropic Messages API reviewer.

    Cancellation of ``complete`` (e.g. by the validator's timeout) aborts
    the in-flight HTTP request.
    """

    API_VERSION = "2023-06-01"

    def __init__(self, settings: AISettings) -> None:
        self._settings = settings
        self.model = settings.model
        self._session: aiohttp.ClientSession | None = None

    @property
    def configured(self) -> bool:
        return bool(self._settings.api_key.get_secret_value())

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()

        body = {
            "model": self._settings.model,
            "max_tokens": self._settings.max_tokens,
            "temperature": self._settings.temperature,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self._settings.api_key.get_secret_value(),
            "anthropic-version": self.API_VERSION,
        }

        try:
            async with self._session.post(
                self._settings.base_url, json=body, headers=headers
            ) as response:
                if response.status >= 400:
                    raise ReviewerError(f"AI_HTTP_{response.status}")
                payload = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise ReviewerError(f"AI_TRANSPORT_ERROR: {e}") from e

        content = payload.get("content") if isinstance(payload, dict) else None
        if not isinstance(content, list):
            raise ReviewerError("AI_EMPTY_RESPONSE")
        return "\n".join(
            str(block.get("text", "")) for block in content if isinstance(block, dict)
        ).strip()

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
