"""In-memory fixed-window rate limiter.

Windows are wall-clock aligned: window ``n`` covers
``[n * window_seconds, (n + 1) * window_seconds)``. This is not a sliding
window, so a burst that straddles a boundary can be admitted up to twice the
limit; that is accepted behavior.

Counters live in this process only. Several workers each enforce their own
quota, so the effective upstream rate is multiplied by the worker count.
The first call of each new window drops the counters of earlier windows, so
memory tracks only the keys seen in the current window.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from beach_proxy.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult


@dataclass
class _WindowCounter:
    window: int
    count: int = 0


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Count units per key inside the current fixed window.

    Args:
        limit: Units allowed per key and window (>= 1).
        window_seconds: Window length in seconds (>= 1).
        clock: Returns UNIX time in seconds; injectable for tests.

    Raises:
        ValueError: If ``limit`` or ``window_seconds`` is below 1.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        self._limit = limit
        self._window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._counters: dict[str, _WindowCounter] = {}
        self._swept_window: int | None = None

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    def consume(self, key: str, *, cost: int = 1) -> RateLimitResult:
        """Spend ``cost`` units of ``key``'s quota in the current window.

        Raises:
            ValueError: If ``key`` is empty or ``cost`` is below 1.
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        if cost < 1:
            raise ValueError("cost must be >= 1")

        now = self._clock()
        window = int(now // self._window_seconds)
        reset_at = (window + 1) * self._window_seconds

        with self._lock:
            if self._swept_window is None or window > self._swept_window:
                self._sweep_locked(window)

            counter = self._counters.get(key)
            if counter is None or counter.window != window:
                # Lazy reset: the first call of a new window starts from zero.
                counter = self._counters[key] = _WindowCounter(window=window)

            allowed = counter.count + cost <= self._limit
            if allowed:
                counter.count += cost
            remaining = max(0, self._limit - counter.count)

        return RateLimitResult(
            allowed=allowed,
            limit=self._limit,
            remaining=remaining,
            reset_at=reset_at,
            retry_after_seconds=None if allowed else max(0, math.ceil(reset_at - now)),
        )

    def _sweep_locked(self, window: int) -> None:
        # Counters from earlier windows can never be read again.
        stale = [k for k, counter in self._counters.items() if counter.window < window]
        for k in stale:
            del self._counters[k]
        self._swept_window = window

    def reset(self) -> None:
        """Forget every counter."""
        with self._lock:
            self._counters.clear()
            self._swept_window = None

    def active_keys(self) -> int:
        with self._lock:
            return len(self._counters)
