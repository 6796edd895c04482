"""Tests for the retrying request executor and its backoff schedule."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from flexinsight.api.executor import RetryingExecutor, backoff_delay
from flexinsight.core.errors import (
    BadRequest,
    Forbidden,
    InternalServerError,
    InvalidApiKey,
    NetworkConnectionError,
    RateLimited,
    ServiceUnavailable,
    Timeout,
    UnknownError,
)
from flexinsight.policy_loader import RetryPolicy


def _request() -> httpx.Request:
    return httpx.Request("GET", "https://api.test/v1/workouts")


def _sender(*outcomes: int | BaseException) -> AsyncMock:
    """An async send() yielding a status-code response or raising, in order."""

    async def _send(request: httpx.Request) -> httpx.Response:
        outcome = next(script)
        if isinstance(outcome, BaseException):
            raise outcome
        return httpx.Response(outcome, request=request, json={"ok": outcome < 400})

    script = iter(outcomes)
    return AsyncMock(side_effect=_send)


# ---------------------------------------------------------------------------
# Backoff schedule
# ---------------------------------------------------------------------------


class TestBackoffDelay:
    def test_doubles_from_base(self) -> None:
        assert [backoff_delay(n) for n in range(3)] == [1000, 2000, 4000]

    def test_capped(self) -> None:
        assert backoff_delay(5) == 30_000
        assert backoff_delay(10) == 30_000

    def test_huge_attempt_stays_capped(self) -> None:
        assert backoff_delay(10_000) == 30_000

    def test_custom_base_and_cap(self) -> None:
        assert backoff_delay(2, base_delay_ms=100, max_delay_ms=250) == 250

    def test_negative_attempt_rejected(self) -> None:
        with pytest.raises(ValueError):
            backoff_delay(-1)


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class TestRetryingExecutor:
    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self, no_sleep: AsyncMock) -> None:
        send = _sender(200)
        response = await RetryingExecutor(send, sleep=no_sleep).execute(_request())
        assert response.status_code == 200
        assert send.await_count == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_server_errors_retry_with_backoff(self, no_sleep: AsyncMock) -> None:
        send = _sender(503, 502, 200)
        response = await RetryingExecutor(send, sleep=no_sleep).execute(_request())
        assert response.status_code == 200
        assert send.await_count == 3
        assert [c.args[0] for c in no_sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_budget_exhausted_raises_last_error(self, no_sleep: AsyncMock) -> None:
        send = _sender(503, 503, 503, 503)
        with pytest.raises(ServiceUnavailable):
            await RetryingExecutor(send, sleep=no_sleep).execute(_request())
        # One initial attempt plus three retries, waiting 1 s, 2 s, 4 s.
        assert send.await_count == 4
        assert [c.args[0] for c in no_sleep.await_args_list] == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self, no_sleep: AsyncMock) -> None:
        send = _sender(429, 200)
        response = await RetryingExecutor(send, sleep=no_sleep).execute(_request())
        assert response.status_code == 200
        assert send.await_count == 2

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted(self, no_sleep: AsyncMock) -> None:
        send = _sender(429, 429)
        with pytest.raises(RateLimited):
            await RetryingExecutor(send, max_retries=1, sleep=no_sleep).execute(_request())

    @pytest.mark.asyncio
    async def test_unauthorized_fails_fast(self, no_sleep: AsyncMock) -> None:
        send = _sender(401, 200)
        with pytest.raises(InvalidApiKey):
            await RetryingExecutor(send, sleep=no_sleep).execute(_request())
        assert send.await_count == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_forbidden_fails_fast(self, no_sleep: AsyncMock) -> None:
        send = _sender(403)
        with pytest.raises(Forbidden):
            await RetryingExecutor(send, sleep=no_sleep).execute(_request())
        assert send.await_count == 1

    @pytest.mark.asyncio
    async def test_other_client_errors_fail_fast(self, no_sleep: AsyncMock) -> None:
        send = _sender(400)
        with pytest.raises(BadRequest):
            await RetryingExecutor(send, sleep=no_sleep).execute(_request())
        assert send.await_count == 1

    @pytest.mark.asyncio
    async def test_transport_failure_is_retried(self, no_sleep: AsyncMock) -> None:
        send = _sender(httpx.ConnectError("refused", request=_request()), 200)
        response = await RetryingExecutor(send, sleep=no_sleep).execute(_request())
        assert response.status_code == 200
        assert send.await_count == 2

    @pytest.mark.asyncio
    async def test_transport_failure_exhausted_keeps_cause(self, no_sleep: AsyncMock) -> None:
        failure = httpx.ConnectError("refused", request=_request())
        send = _sender(failure, failure, failure, failure)
        with pytest.raises(NetworkConnectionError) as info:
            await RetryingExecutor(send, sleep=no_sleep).execute(_request())
        assert info.value.__cause__ is failure
        assert send.await_count == 4

    @pytest.mark.asyncio
    async def test_timeout_classified(self, no_sleep: AsyncMock) -> None:
        failure = httpx.ReadTimeout("slow", request=_request())
        send = _sender(failure)
        with pytest.raises(Timeout):
            await RetryingExecutor(send, max_retries=0, sleep=no_sleep).execute(_request())

    @pytest.mark.asyncio
    async def test_body_decoding_failure_is_classified_not_retried(self, no_sleep: AsyncMock) -> None:
        failure = httpx.DecodingError("bad gzip stream", request=_request())
        send = _sender(failure, 200)
        with pytest.raises(UnknownError) as info:
            await RetryingExecutor(send, sleep=no_sleep).execute(_request())
        assert info.value.__cause__ is failure
        assert send.await_count == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redirect_loop_is_classified(self, no_sleep: AsyncMock) -> None:
        send = _sender(httpx.TooManyRedirects("loop", request=_request()))
        with pytest.raises(UnknownError):
            await RetryingExecutor(send, sleep=no_sleep).execute(_request())
        assert send.await_count == 1

    @pytest.mark.asyncio
    async def test_zero_retries_means_one_attempt(self, no_sleep: AsyncMock) -> None:
        send = _sender(500)
        with pytest.raises(InternalServerError):
            await RetryingExecutor(send, max_retries=0, sleep=no_sleep).execute(_request())
        assert send.await_count == 1

    @pytest.mark.asyncio
    async def test_cancellation_during_backoff_stops_retrying(self) -> None:
        send = _sender(503, 200)
        started = asyncio.Event()

        async def _slow_sleep(seconds: float) -> None:
            started.set()
            await asyncio.sleep(3600)

        executor = RetryingExecutor(send, sleep=_slow_sleep)
        task = asyncio.create_task(executor.execute(_request()))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert send.await_count == 1

    def test_from_policy(self) -> None:
        policy = RetryPolicy(max_retries=5, base_delay_ms=200, max_delay_ms=1000)
        executor = RetryingExecutor.from_policy(_sender(), policy)
        assert executor.max_retries == 5
        assert [executor.delay_for(n) for n in range(4)] == [200, 400, 800, 1000]

    def test_negative_retries_rejected(self) -> None:
        with pytest.raises(ValueError):
            RetryingExecutor(_sender(), max_retries=-1)
