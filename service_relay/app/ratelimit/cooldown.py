"""
Cooldown gate spacing outbound calls to the upstream API.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector


class CooldownGate:
    """Guarantees a minimum interval between the starts of admitted upstream calls.

    Check, wait and update happen under a single lock, so concurrent callers
    queue behind each other and every pair of admissions is at least
    ``cooldown_ms`` apart.
    """

    def __init__(
        self,
        cooldown_ms: int = 3000,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.cooldown_seconds = cooldown_ms / 1000.0
        self.logger = get_logger("relay.cooldown")
        self.metrics = metrics
        self._clock = clock
        self._sleep = sleep
        self._last_admission: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def last_admission(self) -> Optional[float]:
        """Clock reading recorded by the most recent admission."""
        return self._last_admission

    async def admit(self) -> float:
        """Wait until the cooldown has elapsed, record the admission and return its time."""
        waited = 0.0
        async with self._lock:
            remaining = self._remaining_seconds(self._clock())
            if remaining > 0:
                self.logger.debug("Waiting for upstream cooldown", wait_ms=round(remaining * 1000, 1))
            # Timers may fire marginally early, so re-check until the full interval has passed.
            while remaining > 0:
                await self._sleep(remaining)
                waited += remaining
                remaining = self._remaining_seconds(self._clock())

            admitted_at = self._clock()
            self._last_admission = admitted_at

        if self.metrics:
            self.metrics.observe_histogram("cooldown_wait_seconds", waited)
        return admitted_at

    def time_remaining(self) -> int:
        """Milliseconds until the next caller would be admitted without waiting."""
        return int(round(self._remaining_seconds(self._clock()) * 1000))

    def _remaining_seconds(self, now: float) -> float:
        if self._last_admission is None:
            return 0.0
        remaining = self.cooldown_seconds - (now - self._last_admission)
        return remaining if remaining > 0 else 0.0
