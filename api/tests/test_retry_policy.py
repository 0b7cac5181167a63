"""
Tests for RetryPolicy.
"""
import pytest

from core.retry import RetryPolicy


class Recorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class TestRetryPolicy:
    @pytest.mark.asyncio
    async def test_first_success_does_not_sleep(self):
        sleep = Recorder()
        policy = RetryPolicy(max_attempts=3, delay=2.0, sleep=sleep)

        async def ok():
            return "done"

        assert await policy.call(ok) == "done"
        assert policy.attempts == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_sleeps_only_between_attempts(self):
        sleep = Recorder()
        policy = RetryPolicy(max_attempts=3, delay=2.0, sleep=sleep)
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError(f"failure {len(calls)}")
            return len(calls)

        assert await policy.call(flaky) == 3
        assert sleep.delays == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_reraises_last_error(self):
        sleep = Recorder()
        policy = RetryPolicy(max_attempts=3, delay=1.5, sleep=sleep)
        calls = []

        async def broken():
            calls.append(1)
            raise ValueError(f"failure {len(calls)}")

        with pytest.raises(ValueError, match="failure 3"):
            await policy.call(broken)
        assert policy.attempts == 3
        # No sleep after the final attempt
        assert sleep.delays == [1.5, 1.5]

    def test_requires_one_attempt(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
