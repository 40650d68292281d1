"""Bounded exponential-backoff retry around a single upstream call.

The controller is stateless: everything it needs arrives through the
``RetryPolicy`` and the action, so concurrent requests never share retry
state. Sleeping goes through an injectable coroutine so a backing-off
request only suspends its own task.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Awaitable, Callable

from beach_proxy.adapters.upstream.base import UpstreamResponse
from beach_proxy.core.config import UpstreamSettings
from beach_proxy.core.errors import UpstreamNetworkError, UpstreamTimeoutError

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
UpstreamAction = Callable[[], Awaitable[UpstreamResponse]]

RETRYABLE_ERRORS = (UpstreamNetworkError, asyncio.TimeoutError)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration for one upstream call.

    Attributes:
        max_retries: Retries after the first attempt (total attempts = max_retries + 1).
        initial_delay_seconds: Delay before the first retry; doubles each retry.
        max_delay_seconds: Cap for a single delay, including Retry-After values.
        attempt_timeout_seconds: Budget for one attempt; None disables it.
        retry_on_server_errors: Treat upstream 5xx like 429.
        honor_retry_after: Prefer the upstream Retry-After header when present.
    """

    max_retries: int = 3
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    attempt_timeout_seconds: float | None = 10.0
    retry_on_server_errors: bool = False
    honor_retry_after: bool = True

    @classmethod
    def from_settings(cls, upstream: UpstreamSettings) -> "RetryPolicy":
        return cls(
            max_retries=upstream.max_retries,
            initial_delay_seconds=upstream.initial_delay_seconds,
            max_delay_seconds=upstream.max_delay_seconds,
            attempt_timeout_seconds=upstream.timeout_seconds,
            retry_on_server_errors=upstream.retry_on_server_errors,
        )

    def backoff_delay(self, retry_index: int) -> float:
        """Delay before retry number ``retry_index`` (0-based)."""
        delay = self.initial_delay_seconds * (2 ** retry_index)
        return min(delay, self.max_delay_seconds)

    def is_retryable_status(self, status_code: int) -> bool:
        if status_code == 429:
            return True
        return self.retry_on_server_errors and status_code >= 500


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header (delta seconds or HTTP date) into seconds."""
    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when is None:
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - datetime.now(timezone.utc)).total_seconds()
    return max(seconds, 0.0)


async def _run_attempt(action: UpstreamAction, timeout: float | None) -> UpstreamResponse:
    if timeout is None:
        return await action()
    try:
        return await asyncio.wait_for(action(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise UpstreamTimeoutError(
            code="upstream_timeout",
            message="Request timeout",
            details={"context": {"timeout_s": timeout}},
        ) from exc


async def execute_with_retry(
    action: UpstreamAction,
    policy: RetryPolicy,
    *,
    sleep: Sleep = asyncio.sleep,
    endpoint: str | None = None,
) -> UpstreamResponse:
    """Invoke ``action`` until it yields a non-retryable outcome or retries run out.

    Retryable outcomes are upstream 429 (and 5xx when the policy says so),
    network failures and attempt timeouts. The action runs at most
    ``policy.max_retries + 1`` times.

    Args:
        action: Zero-argument coroutine factory performing one upstream call.
        policy: Retry bounds and delays.
        sleep: Coroutine used to wait between attempts.
        endpoint: Upstream path, for log context only.

    Returns:
        UpstreamResponse: The first non-retryable response, or the last
            retryable one when retries are exhausted.

    Raises:
        UpstreamNetworkError: The last transport failure once retries are exhausted.
        UpstreamTimeoutError: The last attempt timeout once retries are exhausted.
    """
    attempt = 0
    while True:
        retry_after: float | None = None
        try:
            response = await _run_attempt(action, policy.attempt_timeout_seconds)
        except RETRYABLE_ERRORS as exc:
            if attempt >= policy.max_retries:
                logger.error(
                    "retry.exhausted",
                    extra={
                        "endpoint": endpoint,
                        "attempts": attempt + 1,
                        "error_type": type(exc).__name__,
                    },
                )
                raise
            reason = type(exc).__name__
        else:
            if not policy.is_retryable_status(response.status_code):
                if attempt:
                    logger.info(
                        "retry.recovered",
                        extra={"endpoint": endpoint, "attempts": attempt + 1},
                    )
                return response
            if attempt >= policy.max_retries:
                logger.warning(
                    "retry.exhausted",
                    extra={
                        "endpoint": endpoint,
                        "attempts": attempt + 1,
                        "status_code": response.status_code,
                    },
                )
                return response
            reason = f"http_{response.status_code}"
            if policy.honor_retry_after:
                retry_after = parse_retry_after(response.header("retry-after"))

        delay = policy.backoff_delay(attempt)
        if retry_after is not None:
            delay = min(retry_after, policy.max_delay_seconds)

        logger.warning(
            "retry.scheduled",
            extra={
                "endpoint": endpoint,
                "attempt": attempt + 1,
                "max_retries": policy.max_retries,
                "delay_s": delay,
                "reason": reason,
                "retry_after_header": retry_after is not None,
            },
        )
        await sleep(delay)
        attempt += 1
