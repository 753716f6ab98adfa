"""Push delivery interface.

Concrete transports (web push, mobile push) live outside this package; the
engine only needs ``notify_alert`` and treats ``sent == 0`` as a normal
outcome, not an error.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from alertbot.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PushResult:
    """Outcome of one push attempt."""

    sent: int = 0
    skipped: str | None = None


class PushNotifier(ABC):
    """Delivers alert payloads to a user's registered devices."""

    @abstractmethod
    async def notify_alert(self, user_id: int, payload: dict) -> PushResult:
        """Deliver ``payload`` to ``user_id``. May raise on transport failure."""
        ...


class NullPushNotifier(PushNotifier):
    """Used when no push transport is configured."""

    async def notify_alert(self, user_id: int, payload: dict) -> PushResult:
        logger.debug("push_skipped", user_id=user_id, reason="PUSH_NOT_CONFIGURED")
        return PushResult(sent=0, skipped="PUSH_NOT_CONFIGURED")
