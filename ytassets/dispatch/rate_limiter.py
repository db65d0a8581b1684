"""Sliding-window rate limiter for outbound provider calls.

Bounds the number of admissions in any trailing window (60 seconds by default).
Each caller reserves its admission slot while holding the lock, so the
decision and the recording are one step; the caller then sleeps until its
slot outside the lock.

Reservations are appended in non-decreasing order and every new slot is at
least one window after the R-th most recent one, so no window of that length
can hold more than R admissions.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque

from ytassets.core.metrics import RATE_LIMIT_WAITS
from ytassets.dispatch.errors import BatchCancelledError
from ytassets.dispatch.timing import ClockFunc, SleepFunc, interruptible_sleep

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """Admission control: at most *capacity* calls per rolling *window* seconds.

    Usage:
        limiter = SlidingWindowRateLimiter(capacity=15)

        # Before each provider call:
        await limiter.wait(cancel=cancel_event)
    """

    def __init__(
        self,
        capacity: int,
        window: float = 60.0,
        clock: ClockFunc = time.monotonic,
        sleep: SleepFunc = asyncio.sleep,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.window = window
        self._clock = clock
        self._sleep = sleep
        self._entries: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        """Drop admissions that have left the window ending at *now*."""
        cutoff = now - self.window
        while self._entries and self._entries[0] <= cutoff:
            self._entries.popleft()

    def _reserve(self, now: float) -> float:
        self._prune(now)
        admit_at = now
        if self._entries:
            # Keep reservations ordered
            admit_at = max(admit_at, self._entries[-1])
        if len(self._entries) >= self.capacity:
            admit_at = max(admit_at, self._entries[-self.capacity] + self.window)
        self._entries.append(admit_at)
        return admit_at

    async def wait(self, cancel: asyncio.Event | None = None) -> float:
        """Block until one call is permitted; returns the admission timestamp.

        Raises BatchCancelledError if *cancel* is set before the slot arrives;
        the reserved slot is released in that case.
        """
        async with self._lock:
            now = self._clock()
            admit_at = self._reserve(now)
            in_window = len(self._entries)

        delay = admit_at - now
        if delay <= 0:
            return admit_at

        RATE_LIMIT_WAITS.inc()
        logger.info(
            "Rate limit reached (%d/%d requests in last %.0fs), waiting %.1fs",
            in_window - 1,
            self.capacity,
            self.window,
            delay,
        )
        try:
            await interruptible_sleep(delay, cancel, sleep=self._sleep)
        except (BatchCancelledError, asyncio.CancelledError):
            async with self._lock:
                try:
                    self._entries.remove(admit_at)
                except ValueError:
                    pass  # already pruned
            raise
        return admit_at

    def current_usage(self) -> tuple[int, int]:
        """(admissions in the current window, capacity)."""
        now = self._clock()
        self._prune(now)
        return sum(1 for t in self._entries if t <= now), self.capacity

    def get_stats(self) -> dict:
        """Current usage for logs and status output."""
        now = self._clock()
        self._prune(now)
        used, capacity = self.current_usage()
        return {
            "current": used,
            "reserved": len(self._entries) - used,
            "capacity": capacity,
            "window_seconds": self.window,
        }
