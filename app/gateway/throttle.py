"""Upstream Throttle: process-wide minimum spacing between upstream calls.

Every attempt from every concurrent request passes through ``acquire()``
before touching the network. The read-compare-sleep-stamp sequence runs
under an asyncio.Lock, so acquirers are served first-come-first-served and
no two permitted calls are closer than ``min_interval``.

This protects the shared upstream quota. Per-client admission is a separate
concern (see app.core.rate_limit).
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class ThrottleState:
    min_interval: float  # seconds
    last_call: float | None = None  # time.monotonic(); None = never


class UpstreamThrottle:
    """Serialized gate enforcing ``min_interval_ms`` between upstream calls.

    Usage:
        throttle = UpstreamThrottle(min_interval_ms=2500)

        # Before every upstream attempt:
        waited = await throttle.acquire()
    """

    def __init__(
        self,
        min_interval_ms: int = 2500,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.state = ThrottleState(min_interval=max(min_interval_ms, 0) / 1000.0)
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._waiting = 0
        self._total_acquired = 0

    @property
    def min_interval(self) -> float:
        return self.state.min_interval

    async def acquire(self) -> float:
        """Wait for the next call slot and claim it.

        Returns the number of seconds spent sleeping inside the gate (not
        counting time queued behind other acquirers).
        """
        self._waiting += 1
        try:
            async with self._lock:
                waited = 0.0
                if self.state.last_call is not None:
                    elapsed = self._clock() - self.state.last_call
                    if elapsed < self.state.min_interval:
                        waited = self.state.min_interval - elapsed
                        logger.debug("Throttle: waiting %.3fs for next upstream slot", waited)
                        await self._sleep(waited)
                self.state.last_call = self._clock()
                self._total_acquired += 1
                return waited
        finally:
            self._waiting -= 1

    def get_stats(self) -> dict:
        last = self.state.last_call
        return {
            "min_interval_ms": int(self.state.min_interval * 1000),
            "seconds_since_last_call": round(self._clock() - last, 3) if last is not None else None,
            "waiting": self._waiting,
            "total_acquired": self._total_acquired,
        }
