"""Rate limiting adapters.

Upstream quotas are enforced per process through an abstract limiter so a
shared store (e.g. Redis) can replace the in-memory one without touching
the proxy service.
"""

from beach_proxy.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from beach_proxy.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "InMemoryFixedWindowRateLimiter",
    "RateLimitResult",
]
