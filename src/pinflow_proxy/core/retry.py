"""Bounded retry for a single async call."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_async(
    call: Callable[[], Awaitable[T]],
    *,
    attempts: int = 2,
    delay: float = 1.5,
    should_retry: Callable[[BaseException], bool] = lambda exc: False,
    suggested_delay: Callable[[BaseException], Optional[float]] = lambda exc: None,
    max_delay: float = 10.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``call()`` up to ``attempts`` times.

    Only exceptions accepted by ``should_retry`` trigger another attempt; the
    last one is re-raised unchanged. Between attempts we wait for the delay
    the provider suggested (capped at ``max_delay``) or the fixed ``delay``.
    """
    attempt = 1
    while True:
        try:
            return await call()
        except Exception as exc:
            if attempt >= attempts or not should_retry(exc):
                raise
            wait = suggested_delay(exc)
            wait = delay if wait is None else min(max(wait, 0.0), max_delay)
            logger.warning("Attempt %d/%d failed (%s) — retrying in %.1fs", attempt, attempts, exc, wait)
            await sleep(wait)
            attempt += 1
