"""In-memory TTL cache for upstream JSON payloads.

Entries carry their own expiry so volatile endpoints (network status, TPS)
and slow-moving ones (validator lists) share one store with different TTLs.
The store is an ``OrderedDict`` kept in recency order, so the LRU entry is
always first. Process-local; guarded by one lock.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass
from hashlib import sha256
from typing import Any, Iterable
from urllib.parse import urlencode

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class CacheCounters:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0


class SimpleTTLCache:
    """Thread-safe TTL cache with a per-entry lifetime and LRU bound.

    Args:
        ttl_seconds: Lifetime for entries stored without an explicit TTL.
        max_entries: Capacity; the least recently used entry is dropped
            beyond it. ``None`` means unbounded.
    """

    def __init__(self, ttl_seconds: float = 60, max_entries: int | None = 1024) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._counters = CacheCounters()
        self._lock = threading.RLock()

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"SimpleTTLCache(size={len(self._entries)}, {self._counters})"

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for ``key``, or ``default`` on a miss.

        Reading an expired entry removes it and counts as a miss. Pass a
        sentinel as ``default`` when cached values may themselves be None.
        """

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.expired(time.time()):
                del self._entries[key]
                self._counters.expirations += 1
                logger.debug("cache.expired", extra={"cache_key": key[:16]})
                entry = None

            if entry is None:
                self._counters.misses += 1
                return default

            self._entries.move_to_end(key)
            self._counters.hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        """Store ``value`` under ``key``, replacing any previous entry.

        Args:
            key: Cache key (see ``build_cache_key``).
            value: JSON-compatible payload.
            ttl_seconds: Entry lifetime; the cache default when omitted.
        """

        ttl = self._ttl if ttl_seconds is None else ttl_seconds

        with self._lock:
            self._purge_expired_locked()
            self._entries[key] = CacheEntry(value=value, expires_at=time.time() + ttl)
            self._entries.move_to_end(key)

            if self._max_entries is not None:
                while len(self._entries) > self._max_entries:
                    self._entries.popitem(last=False)
                    self._counters.evictions += 1

            logger.debug(
                "cache.set",
                extra={"cache_key": key[:16], "ttl_s": ttl, "size": len(self._entries)},
            )

    def delete(self, key: str) -> bool:
        """Remove one entry. Returns True when something was removed."""

        with self._lock:
            removed = self._entries.pop(key, None) is not None
        logger.info("cache.delete", extra={"cache_key": key[:16], "removed": removed})
        return removed

    def clear(self) -> None:
        """Drop every entry and reset the counters."""

        with self._lock:
            dropped = len(self._entries)
            self._entries.clear()
            self._counters = CacheCounters()
        logger.info("cache.clear", extra={"entries": dropped})

    def stats(self) -> dict[str, int | float | None]:
        """Counters and sizing; cached values are never included."""

        with self._lock:
            return {
                "default_ttl_seconds": self._ttl,
                "max_entries": self._max_entries,
                "entries": len(self._entries),
                **asdict(self._counters),
            }

    def _purge_expired_locked(self) -> None:
        now = time.time()
        for key in [k for k, entry in self._entries.items() if entry.expired(now)]:
            del self._entries[key]
            self._counters.expirations += 1


def normalize_query(params: Iterable[tuple[str, str]]) -> str:
    """Encode query parameters sorted by name, then value."""

    return urlencode(sorted((str(k), str(v)) for k, v in params))


def build_cache_key(endpoint: str, params: Iterable[tuple[str, str]] = ()) -> str:
    """Build a stable cache key from an upstream endpoint and its query parameters.

    Parameter insertion order does not affect the key.

    Args:
        endpoint: Upstream path (e.g. ``/v1/validators/top``).
        params: Query parameters as (name, value) pairs.

    Returns:
        Hex-encoded SHA-256 digest string.
    """

    digest = sha256(f"{endpoint}?{normalize_query(params)}".encode())
    return digest.hexdigest()
