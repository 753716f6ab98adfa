"""Alert policy checks: duplicate window, daily cap and rejection cooldown.

The duplicate, cap and cooldown reads and the persist/increment writes for a
given (user, symbol) run under one asyncio.Lock, so two concurrent scans of
the same symbol cannot both pass the cap check before either increments it.

Cooldown and daily-count checks are no-ops when the store reported the
corresponding table missing at startup.
"""

import asyncio
from datetime import datetime, timezone

from alertbot.ai.models import ValidationMode, ValidationVerdict
from alertbot.config import AlertSettings
from alertbot.data.store import AlertStore, StoreCapabilities
from alertbot.logging import get_logger
from alertbot.models import Alert, AlertCandidate, CooldownRecord

logger = get_logger(__name__)


def day_key(now: float) -> str:
    """UTC calendar day used to bucket daily alert counts."""
    return datetime.fromtimestamp(now, tz=timezone.utc).strftime("%Y-%m-%d")


class AlertPolicy:
    """Gatekeeper between a scored candidate and a persisted alert.

    Args:
        store: Alert store.
        capabilities: Optional-table availability resolved at startup.
        settings: Duplicate window, cap and cooldown parameters.
    """

    def __init__(
        self,
        store: AlertStore,
        capabilities: StoreCapabilities,
        settings: AlertSettings,
    ) -> None:
        self._store = store
        self._capabilities = capabilities
        self._settings = settings
        self._locks: dict[tuple[int, str], asyncio.Lock] = {}

    @property
    def cooldown_tracking_available(self) -> bool:
        return self._capabilities.cooldown_tracking_available

    @property
    def daily_count_tracking_available(self) -> bool:
        return self._capabilities.daily_count_tracking_available

    def lock_for(self, user_id: int, symbol: str) -> asyncio.Lock:
        """Lock serializing checks and writes for one (user, symbol)."""
        key = (user_id, symbol)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def is_duplicate(self, candidate: AlertCandidate, now: float) -> bool:
        since = now - self._settings.duplicate_window_hours * 3600
        return await self._store.has_recent_duplicate(
            candidate.user_id, candidate.symbol, candidate.type, since
        )

    async def daily_cap_reached(self, user_id: int, cap: int, now: float) -> bool:
        if not self.daily_count_tracking_available:
            return False
        count = await self._store.get_daily_count(user_id, day_key(now))
        return count >= cap

    async def active_cooldown(self, candidate: AlertCandidate, now: float) -> CooldownRecord | None:
        """The blocking cooldown for the candidate's (symbol, direction), if any."""
        if not self.cooldown_tracking_available:
            return None
        record = await self._store.get_cooldown(candidate.symbol, candidate.direction)
        if record is not None and record.is_active(now):
            return record
        return None

    async def record_verdict(
        self,
        candidate: AlertCandidate,
        verdict: ValidationVerdict,
        now: float,
    ) -> CooldownRecord | None:
        """Rejections count toward a cooldown; confirmations reset it.

        Fallback verdicts leave the counter untouched.
        """
        if not self.cooldown_tracking_available:
            return None

        if verdict.mode is ValidationMode.REJECTED:
            return await self._store.record_rejection(
                candidate.symbol,
                candidate.direction,
                threshold=self._settings.rejection_threshold,
                cooldown_seconds=self._settings.cooldown_hours * 3600,
                now=now,
            )
        if verdict.mode is ValidationMode.VALIDATED:
            await self._store.reset_rejections(candidate.symbol, candidate.direction, now)
        return None

    async def commit(
        self,
        candidate: AlertCandidate,
        now: float,
        verdict: ValidationVerdict | None = None,
        count_toward_cap: bool = True,
    ) -> Alert:
        """Persist the alert and bump the user's daily counter."""
        alert = await self._store.insert_alert(
            candidate,
            created_at=now,
            ai_mode=verdict.mode.value if verdict is not None else None,
            ai_reasoning=verdict.reasoning if verdict is not None else None,
        )
        if count_toward_cap and self.daily_count_tracking_available:
            await self._store.increment_daily_count(candidate.user_id, day_key(now))
        return alert
