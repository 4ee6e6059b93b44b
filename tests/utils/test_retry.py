"""
Tests for the retry policy and retry helper.

Sleep is injected, so backoff is asserted on requested delays rather than
wall time.
"""

from unittest.mock import AsyncMock

import pytest

from chainwatch.core.errors import ClientError, NonJsonResponse, RetriesExhausted, TransportError
from chainwatch.utils.retry import RetryPolicy, retry_async


class TestRetryPolicy:
    def test_exponential_delays_are_capped(self):
        policy = RetryPolicy(base_delay=0.1, factor=2.0, max_delay=0.3, max_attempts=5)

        assert list(policy.delays()) == pytest.approx([0.1, 0.2, 0.3, 0.3])

    def test_one_attempt_has_no_delays(self):
        assert list(RetryPolicy(max_attempts=1).delays()) == []

    def test_jitter_is_bounded(self):
        policy = RetryPolicy(base_delay=1.0, factor=1.0, max_delay=1.0, max_attempts=20, jitter=0.5)

        assert all(1.0 <= d <= 1.5 for d in policy.delays())

    @pytest.mark.parametrize(
        "kwargs",
        [{"max_attempts": 0}, {"base_delay": -1}, {"factor": 0.5}],
    )
    def test_invalid_policy(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


class TestRetryAsync:
    @pytest.mark.asyncio
    async def test_success_first_attempt(self, recording_sleep):
        operation = AsyncMock(return_value="ok")

        result = await retry_async(operation, RetryPolicy(), sleep=recording_sleep)

        assert result == "ok"
        assert operation.await_count == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_retryable_then_success(self, recording_sleep):
        operation = AsyncMock(side_effect=[TransportError("reset"), TransportError("HTTP 503", 503), "ok"])
        policy = RetryPolicy(base_delay=0.1, factor=2.0, max_delay=3.0, max_attempts=3)

        result = await retry_async(operation, policy, sleep=recording_sleep)

        assert result == "ok"
        assert operation.await_count == 3
        assert recording_sleep.delays == pytest.approx([0.1, 0.2])

    @pytest.mark.asyncio
    async def test_non_retryable_fails_fast(self, recording_sleep):
        operation = AsyncMock(side_effect=ClientError(404, "not found"))

        with pytest.raises(ClientError) as exc_info:
            await retry_async(operation, RetryPolicy(max_attempts=5), sleep=recording_sleep)

        assert exc_info.value.status == 404
        assert operation.await_count == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_exhaustion_wraps_last_error(self, recording_sleep):
        last = NonJsonResponse("Response is not JSON", preview="<html>")
        operation = AsyncMock(side_effect=[TransportError("timeout"), TransportError("timeout"), last])

        with pytest.raises(RetriesExhausted) as exc_info:
            await retry_async(operation, RetryPolicy(max_attempts=3), sleep=recording_sleep)

        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is last
        assert len(recording_sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_non_retryable_non_json(self, recording_sleep):
        operation = AsyncMock(side_effect=NonJsonResponse("bad", should_retry=False))

        with pytest.raises(NonJsonResponse):
            await retry_async(operation, RetryPolicy(max_attempts=3), sleep=recording_sleep)

        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_unexpected_exception_propagates(self, recording_sleep):
        operation = AsyncMock(side_effect=KeyError("boom"))

        with pytest.raises(KeyError):
            await retry_async(operation, RetryPolicy(max_attempts=3), sleep=recording_sleep)

        assert operation.await_count == 1
