"""At-most-one in-flight coroutine per key.

Concurrent callers asking for the same key while a fetch is running await
that fetch's result (or exception) instead of starting their own. Keys are
forgotten as soon as the fetch settles, so nothing here acts as a cache.

Cancelling the leading caller does not cancel its followers: they receive
the error built by ``abandoned_error`` instead of a ``CancelledError`` they
never asked for.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _default_abandoned_error(key: str) -> Exception:
    return RuntimeError(f"in-flight call for {key[:16]} was cancelled")


class SingleFlight:
    """Deduplicate concurrent coroutine calls sharing a key within one event loop."""

    def __init__(self, abandoned_error: Callable[[str], Exception] | None = None) -> None:
        self._inflight: dict[str, asyncio.Future[Any]] = {}
        self._abandoned_error = abandoned_error or _default_abandoned_error

    def __len__(self) -> int:
        return len(self._inflight)

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> tuple[T, bool]:
        """Run ``fn`` for ``key`` unless a run is already in flight.

        Args:
            key: Deduplication key (the cache key for proxy fetches).
            fn: Zero-argument coroutine factory.

        Returns:
            Tuple of (result, shared) where ``shared`` is True for callers that
            joined an existing flight.
        """
        existing = self._inflight.get(key)
        if existing is not None:
            logger.debug("single_flight.joined", extra={"cache_key": key[:16]})
            return await asyncio.shield(existing), True

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await fn()
        except asyncio.CancelledError:
            logger.debug("single_flight.leader_cancelled", extra={"cache_key": key[:16]})
            self._settle_with_error(future, self._abandoned_error(key))
            raise
        except Exception as exc:
            self._settle_with_error(future, exc)
            raise
        else:
            future.set_result(result)
            return result, False
        finally:
            self._inflight.pop(key, None)

    @staticmethod
    def _settle_with_error(future: asyncio.Future[Any], exc: BaseException) -> None:
        future.set_exception(exc)
        # Mark retrieved so an unjoined flight does not log "never retrieved".
        future.exception()
