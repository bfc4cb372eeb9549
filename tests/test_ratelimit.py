"""Tests for messageflow/security/ratelimit.py: per-provider sliding window."""

from unittest.mock import patch

import pytest

from messageflow.security.ratelimit import SlidingWindowLimiter, provider_key


@pytest.fixture
def limiter():
    return SlidingWindowLimiter()


class TestSlidingWindowLimiter:

    async def test_first_request_allowed(self, limiter):
        result = await limiter.check("1:1", limit=5)
        assert result.allowed is True
        assert result.remaining == 4
        assert result.limit == 5

    async def test_remaining_decrements(self, limiter):
        for _ in range(3):
            result = await limiter.check("1:1", limit=5)
        assert result.allowed is True
        assert result.remaining == 2

    async def test_limit_exceeded(self, limiter):
        for _ in range(5):
            await limiter.check("1:1", limit=5)
        result = await limiter.check("1:1", limit=5)
        assert result.allowed is False
        assert result.remaining == 0
        assert result.reset_seconds > 0

    async def test_zero_limit_is_unlimited(self, limiter):
        for _ in range(50):
            result = await limiter.check("1:1", limit=0)
        assert result.allowed is True
        assert result.limit == 0

    async def test_keys_independent(self, limiter):
        for _ in range(2):
            await limiter.check(provider_key(1, 1), limit=2)
        assert (await limiter.check(provider_key(1, 1), limit=2)).allowed is False
        assert (await limiter.check(provider_key(1, 2), limit=2)).allowed is True
        assert (await limiter.check(provider_key(2, 1), limit=2)).allowed is True

    async def test_window_expiry(self, limiter):
        with patch("messageflow.security.ratelimit.time.monotonic", return_value=1000.0):
            for _ in range(5):
                await limiter.check("1:1", limit=5)
            assert (await limiter.check("1:1", limit=5)).allowed is False

        # Jump forward past the 60s window
        with patch("messageflow.security.ratelimit.time.monotonic", return_value=1061.0):
            result = await limiter.check("1:1", limit=5)
            assert result.allowed is True
            assert result.remaining == 4

    async def test_reset(self, limiter):
        for _ in range(5):
            await limiter.check("1:1", limit=5)
        limiter.reset("1:1")
        assert (await limiter.check("1:1", limit=5)).allowed is True


def test_provider_key():
    assert provider_key(3, 12) == "3:12"
