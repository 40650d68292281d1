"""Rate limiter contract used by the proxy's endpoint classes.

The proxy only talks to ``AbstractRateLimiter``; the in-memory limiter is
the one shipped implementation, and a store shared between processes would
plug in behind the same two calls.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one ``consume`` call.

    ``remaining`` is what is left of the current window after this call;
    ``retry_after_seconds`` is only set when the call was denied and counts
    whole seconds until ``reset_at`` (UNIX time of the next window).
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None = None


class AbstractRateLimiter(ABC):
    """Quota of ``limit`` units per ``window_seconds`` for each key."""

    @property
    @abstractmethod
    def limit(self) -> int: ...

    @property
    @abstractmethod
    def window_seconds(self) -> int: ...

    @abstractmethod
    def consume(self, key: str, *, cost: int = 1) -> RateLimitResult:
        """Spend ``cost`` units of ``key``'s quota if they fit in the current window.

        A denied call spends nothing.
        """

    def check_and_increment(self, key: str) -> bool:
        """Spend one unit for ``key``; True when the call was allowed."""
        return self.consume(key).allowed
