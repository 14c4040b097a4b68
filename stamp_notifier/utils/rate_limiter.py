"""Stamp Notifier — Async Rate Limiter.

Sliding-window limiter used to keep store API calls under the
per-base request ceiling.
"""

from __future__ import annotations

import asyncio
import time

from stamp_notifier.utils.logger import get_logger

logger = get_logger(__name__)


class AsyncRateLimiter:
    """Allow at most ``max_calls`` acquisitions per ``period`` seconds.

    Attributes:
        max_calls: Maximum number of calls allowed within the window.
        period: Window length in seconds.
    """

    def __init__(self, max_calls: int, period_seconds: float) -> None:
        if max_calls < 1:
            raise ValueError(f"max_calls must be >= 1, got {max_calls}")
        self.max_calls = max_calls
        self.period = period_seconds
        self._timestamps: list[float] = []
        self._lock = asyncio.Lock()

    def _cleanup_expired(self) -> None:
        cutoff = time.monotonic() - self.period
        self._timestamps = [ts for ts in self._timestamps if ts > cutoff]

    async def acquire(self) -> None:
        """Wait until a slot is free, then take it.

        Safe to call from concurrent coroutines; the lock is held while
        sleeping, so waiters are served in arrival order.
        """
        async with self._lock:
            while True:
                self._cleanup_expired()
                if len(self._timestamps) < self.max_calls:
                    self._timestamps.append(time.monotonic())
                    return

                wait_time = self._timestamps[0] + self.period - time.monotonic()
                if wait_time > 0:
                    logger.debug(
                        "Rate limit reached (%d/%d). Waiting %.2f seconds...",
                        len(self._timestamps), self.max_calls, wait_time,
                    )
                    await asyncio.sleep(wait_time)
