"""Serializing rate limiter for a single upstream provider.

All outbound calls pass through one FIFO ``asyncio.Lock``. Before a call
starts the limiter sleeps for

    wait = max(0,
               last_call_start + min_interval - now,
               provider_cooldown_until - now,
               endpoint_cooldown_until[path] - now)

Two cooldown tiers are tracked separately: a short global cooldown after a
rate-limit response (every path waits) and a long per-path cooldown after
an entitlement 403 (only that path is affected).

The limiter is owned by a client instance. Clock and sleep are injectable
so tests can drive time deterministically.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from alertbot.exceptions import EndpointForbiddenError
from alertbot.logging import get_logger

logger = get_logger(__name__)


class ProviderRateLimiter:
    """Global token-bucket-of-one with two-tier cooldowns.

    Args:
        min_interval: Minimum seconds between call starts.
        provider_cooldown: Seconds every path waits after a rate limit.
        endpoint_cooldown: Seconds a single path is blocked after a 403.
        clock: Monotonic clock in seconds.
        sleep: Awaitable sleep in seconds.
    """

    def __init__(
        self,
        min_interval: float = 1.3,
        provider_cooldown: float = 65.0,
        endpoint_cooldown: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._min_interval = min_interval
        self._provider_cooldown = provider_cooldown
        self._endpoint_cooldown = endpoint_cooldown
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_call_start: float | None = None
        self._provider_cooldown_until = 0.0
        self._endpoint_cooldown_until: dict[str, float] = {}

    @property
    def last_call_start(self) -> float | None:
        return self._last_call_start

    @property
    def provider_cooldown_until(self) -> float:
        return self._provider_cooldown_until

    def compute_wait(self, path: str) -> float:
        """Seconds the next call to ``path`` must wait before starting."""
        now = self._clock()
        waits = [
            0.0,
            self._provider_cooldown_until - now,
            self._endpoint_cooldown_until.get(path, 0.0) - now,
        ]
        if self._last_call_start is not None:
            waits.append(self._last_call_start + self._min_interval - now)
        return max(waits)

    def endpoint_blocked_for(self, path: str) -> float:
        """Remaining entitlement cooldown for ``path`` (0 when usable)."""
        return max(0.0, self._endpoint_cooldown_until.get(path, 0.0) - self._clock())

    def provider_blocked_for(self) -> float:
        """Remaining global rate-limit cooldown (0 when usable)."""
        return max(0.0, self._provider_cooldown_until - self._clock())

    def open_provider_cooldown(self) -> float:
        """Block every path for the provider cooldown. Returns the duration."""
        self._provider_cooldown_until = self._clock() + self._provider_cooldown
        logger.warning(
            "provider_cooldown_opened",
            seconds=self._provider_cooldown,
        )
        return self._provider_cooldown

    def open_endpoint_cooldown(self, path: str) -> float:
        """Block only ``path`` for the endpoint cooldown. Returns the duration."""
        self._endpoint_cooldown_until[path] = self._clock() + self._endpoint_cooldown
        logger.warning(
            "endpoint_cooldown_opened",
            path=path,
            seconds=self._endpoint_cooldown,
        )
        return self._endpoint_cooldown

    @asynccontextmanager
    async def slot(self, path: str, fail_fast: bool = False) -> AsyncIterator[None]:
        """Hold the provider queue for one outbound call to ``path``.

        Waits in FIFO order, sleeps the computed wait, records the call
        start and keeps the queue until the caller's block exits so calls
        never overlap.

        With ``fail_fast`` a path inside its entitlement cooldown raises
        EndpointForbiddenError once the queue is reached instead of
        sleeping through the cooldown with the queue held.
        """
        async with self._lock:
            blocked = self.endpoint_blocked_for(path)
            if fail_fast and blocked > 0:
                raise EndpointForbiddenError(
                    f"Endpoint {path} cooling down after 403",
                    status=403,
                    path=path,
                    retry_after=blocked,
                )
            wait = self.compute_wait(path)
            if wait > 0:
                logger.debug("provider_call_waiting", path=path, wait=round(wait, 3))
                await self._sleep(wait)
            self._last_call_start = self._clock()
            yield
