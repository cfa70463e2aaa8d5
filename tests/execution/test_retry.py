"""Tests for retry strategies."""

import pytest

from catalog_cache.core.errors import ClientError, RateLimitError, TransportError
from catalog_cache.execution.retry import ExponentialBackoff, NoRetry, RetryContext


class TestExponentialBackoff:
    """Tests for ExponentialBackoff strategy."""

    def test_default_configuration(self):
        strategy = ExponentialBackoff()
        assert strategy.max_retries == 3
        assert strategy.base_delay == 1.0
        assert strategy.max_delay == 30.0
        assert strategy.jitter is True

    def test_delay_calculation_no_jitter(self):
        strategy = ExponentialBackoff(base_delay=1.0, multiplier=2.0, max_delay=60.0, jitter=False)
        assert [strategy.next_delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_delay_capped_at_max(self):
        strategy = ExponentialBackoff(base_delay=10.0, max_delay=30.0, jitter=False)
        assert strategy.next_delay(5) == 30.0

    def test_jitter_stays_in_range(self):
        strategy = ExponentialBackoff(base_delay=4.0, jitter=True, jitter_range=0.25)
        for _ in range(50):
            assert 3.0 <= strategy.next_delay(0) <= 5.0

    def test_only_retryable_errors_retried(self):
        strategy = ExponentialBackoff(max_retries=3)
        assert strategy.should_retry(0, TransportError("503")) is True
        assert strategy.should_retry(0, ClientError("400")) is False
        assert strategy.should_retry(0, ValueError("x")) is False

    def test_should_retry_at_limit(self):
        strategy = ExponentialBackoff(max_retries=3)
        assert strategy.should_retry(2, TransportError("x")) is True
        assert strategy.should_retry(3, TransportError("x")) is False


class TestNoRetry:
    def test_never_retries(self):
        assert NoRetry().should_retry(0, TransportError("x")) is False
        assert NoRetry().next_delay(0) == 0.0


class TestRetryContext:
    @pytest.fixture()
    def sleeps(self):
        return []

    @pytest.fixture()
    def fake_sleep(self, sleeps):
        async def _sleep(delay: float) -> None:
            sleeps.append(delay)

        return _sleep

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self, sleeps, fake_sleep):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise TransportError("503")
            return "ok"

        ctx = RetryContext(ExponentialBackoff(max_retries=3, base_delay=1.0, jitter=False), sleep=fake_sleep)
        assert await ctx.run_async(flaky) == "ok"
        assert ctx.attempts == 3
        assert sleeps == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, sleeps, fake_sleep):
        async def always_fails():
            raise TransportError("down")

        ctx = RetryContext(ExponentialBackoff(max_retries=2, jitter=False), sleep=fake_sleep)
        with pytest.raises(TransportError):
            await ctx.run_async(always_fails)
        assert ctx.attempts == 3
        assert len(sleeps) == 2

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, sleeps, fake_sleep):
        async def bad_request():
            raise ClientError("400")

        ctx = RetryContext(ExponentialBackoff(max_retries=5), sleep=fake_sleep)
        with pytest.raises(ClientError):
            await ctx.run_async(bad_request)
        assert ctx.attempts == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_retry_after_overrides_delay(self, sleeps, fake_sleep):
        calls = []

        async def limited():
            calls.append(1)
            if len(calls) == 1:
                raise RateLimitError(retry_after=7.0)
            return "ok"

        ctx = RetryContext(ExponentialBackoff(max_retries=1, base_delay=1.0, max_delay=30.0, jitter=False), sleep=fake_sleep)
        await ctx.run_async(limited)
        assert sleeps == [7.0]

    @pytest.mark.asyncio
    async def test_retry_after_capped_by_max_delay(self, sleeps, fake_sleep):
        calls = []

        async def limited():
            calls.append(1)
            if len(calls) == 1:
                raise RateLimitError(retry_after=120.0)
            return "ok"

        ctx = RetryContext(ExponentialBackoff(max_retries=1, max_delay=10.0, jitter=False), sleep=fake_sleep)
        await ctx.run_async(limited)
        assert sleeps == [10.0]

    @pytest.mark.asyncio
    async def test_on_retry_callback(self, fake_sleep):
        seen = []

        async def flaky():
            if not seen:
                raise TransportError("x")
            return 1

        ctx = RetryContext(
            ExponentialBackoff(max_retries=1, jitter=False),
            on_retry=lambda attempt, err, delay: seen.append((attempt, type(err).__name__)),
            sleep=fake_sleep,
        )
        await ctx.run_async(flaky)
        assert seen == [(1, "TransportError")]

    @pytest.mark.asyncio
    async def test_last_error_and_elapsed_visible_to_callback(self, fake_sleep):
        seen = []
        ctx = None

        async def flaky():
            if not seen:
                raise TransportError("503")
            return 1

        def on_retry(attempt, err, delay):
            seen.append((ctx.last_error is err, ctx.elapsed_seconds >= 0))

        ctx = RetryContext(ExponentialBackoff(max_retries=1, jitter=False), on_retry=on_retry, sleep=fake_sleep)
        await ctx.run_async(flaky)
        assert seen == [(True, True)]
