"""Proactive request throttle shared by every fetch call."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable


class RateLimiter:
    """Admit at most one request per ``interval`` seconds.

    The first admission is immediate. Waiters are admitted in arrival order;
    the lock is held across the sleep so nobody overtakes a sleeping waiter.
    """

    def __init__(
        self,
        interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.interval = interval
        self._clock = clock
        self._sleep = sleep
        self._last: float | None = None
        self._lock = asyncio.Lock()

    async def until_ready(self) -> None:
        async with self._lock:
            now = self._clock()
            if self._last is not None:
                delay = self._last + self.interval - now
                if delay > 0:
                    await self._sleep(delay)
                    now = self._clock()
            self._last = now


__all__ = ["RateLimiter"]
