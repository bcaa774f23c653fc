"""Process-wide limiter for calls to the generation endpoint.

Sliding window over the timestamps of admitted calls. Waiters queue on an
asyncio.Lock, which wakes them in FIFO order, so concurrent requests are
delayed oldest-first and never dropped or reordered.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class SlidingWindowLimiter:
    """Admit at most ``max_calls`` per ``window_seconds``. ``max_calls <= 0`` disables it."""

    def __init__(
        self,
        max_calls: int,
        window_seconds: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._admitted: deque[float] = deque()

    @property
    def enabled(self) -> bool:
        return self.max_calls > 0

    def _evict(self, now: float) -> None:
        while self._admitted and now - self._admitted[0] >= self.window_seconds:
            self._admitted.popleft()

    async def acquire(self) -> None:
        """Suspend until a slot is free, then take it."""
        if not self.enabled:
            return
        async with self._lock:
            while True:
                now = self._clock()
                self._evict(now)
                if len(self._admitted) < self.max_calls:
                    self._admitted.append(now)
                    return
                wait = self.window_seconds - (now - self._admitted[0])
                logger.info("Generation rate limit reached — waiting %.2fs for a slot", wait)
                await self._sleep(wait)

    def in_window(self) -> int:
        self._evict(self._clock())
        return len(self._admitted)
