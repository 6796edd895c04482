"""Retrying request executor with bounded exponential backoff.

Wraps a single-attempt ``send`` callable (typically ``httpx.AsyncClient.send``)
and retries only what the error classifier marks as transient:

    transport failure      → classify; retry if retryable and budget remains
    401 / 403              → raise immediately, even with budget left
    429 / 5xx              → close the response, back off, retry
    other 4xx              → raise immediately
    2xx / 3xx              → return the response

Backoff for attempt ``n`` (0-based) is ``min(base * 2**n, cap)`` milliseconds,
so the defaults wait 1 s, 2 s, 4 s between the four attempts.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import httpx

from flexinsight.core.errors import ApiError, AuthError, classify_exception, classify_status
from flexinsight.policy_loader import RetryPolicy

logger = logging.getLogger("flexinsight.api.executor")

Send = Callable[[httpx.Request], Awaitable[httpx.Response]]
Sleep = Callable[[float], Awaitable[None]]

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_MS = 1000
DEFAULT_MAX_DELAY_MS = 30_000


def backoff_delay(
    attempt: int,
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
    max_delay_ms: int = DEFAULT_MAX_DELAY_MS,
) -> int:
    """Return the wait before retry number ``attempt`` (0-based), in milliseconds.

    Args:
        attempt:       Zero-based index of the failed attempt.
        base_delay_ms: Delay after the first failure.
        max_delay_ms:  Upper bound on any single delay.

    Returns:
        ``min(base_delay_ms * 2**attempt, max_delay_ms)``.
    """
    if attempt < 0:
        raise ValueError(f"attempt must be >= 0, got {attempt}")
    # Cap the exponent so huge attempt numbers do not build huge ints.
    exponent = min(attempt, 62)
    return min(base_delay_ms * (2**exponent), max_delay_ms)


def _is_retryable_status(code: int) -> bool:
    return code == 429 or 500 <= code <= 599


class RetryingExecutor:
    """Execute requests through ``send`` with classified, bounded retries.

    Usage::

        async with httpx.AsyncClient() as client:
            executor = RetryingExecutor(client.send)
            response = await executor.execute(client.build_request("GET", url))
    """

    def __init__(
        self,
        send: Send,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
        max_delay_ms: int = DEFAULT_MAX_DELAY_MS,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the executor.

        Args:
            send:          Async callable performing exactly one attempt.
            max_retries:   Additional attempts allowed after the first.
            base_delay_ms: Backoff base.
            max_delay_ms:  Backoff cap.
            sleep:         Awaitable sleep taking seconds (injectable for tests).
        """
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        self._send = send
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self._sleep = sleep

    @classmethod
    def from_policy(cls, send: Send, policy: RetryPolicy, sleep: Sleep = asyncio.sleep) -> RetryingExecutor:
        return cls(
            send,
            max_retries=policy.max_retries,
            base_delay_ms=policy.base_delay_ms,
            max_delay_ms=policy.max_delay_ms,
            sleep=sleep,
        )

    def delay_for(self, attempt: int) -> int:
        return backoff_delay(attempt, self.base_delay_ms, self.max_delay_ms)

    async def execute(self, request: httpx.Request) -> httpx.Response:
        """Send ``request``, retrying transient failures.

        Args:
            request: The request to send.  It is re-sent unchanged on retry.

        Returns:
            The first response with a non-error status.

        Raises:
            ApiError: The classified failure, once it is non-retryable or the
                      retry budget is spent.
            asyncio.CancelledError: Propagated immediately, including from
                      inside a backoff sleep.
        """
        attempt = 0
        while True:
            try:
                response = await self._send(request)
            except (httpx.RequestError, OSError) as exc:
                error = classify_exception(exc)
                if not error.is_retryable or attempt >= self.max_retries:
                    logger.warning(
                        "%s %s failed after %d attempt(s): %s",
                        request.method, request.url, attempt + 1, error.message,
                    )
                    raise error from exc
                await self._backoff(request, attempt, error)
                attempt += 1
                continue

            code = response.status_code
            if code < 400:
                return response

            error = classify_status(code, response.reason_phrase)
            # Retryable statuses are only ever 429 / 5xx; auth never retries.
            if (
                isinstance(error, AuthError)
                or not _is_retryable_status(code)
                or attempt >= self.max_retries
            ):
                await response.aclose()
                logger.warning(
                    "%s %s returned HTTP %d after %d attempt(s)",
                    request.method, request.url, code, attempt + 1,
                )
                raise error

            await response.aclose()
            await self._backoff(request, attempt, error)
            attempt += 1

    async def _backoff(self, request: httpx.Request, attempt: int, error: ApiError) -> None:
        delay_ms = self.delay_for(attempt)
        logger.warning(
            "%s %s attempt %d/%d failed (%s), retrying in %d ms",
            request.method, request.url, attempt + 1, self.max_retries + 1,
            error.message, delay_ms,
        )
        await self._sleep(delay_ms / 1000.0)
