"""Tests for the per-minute generation request limiter."""

from datetime import UTC, datetime, timedelta

import pytest

from vibetravels.db.inmemory import InMemoryRateLimiter
from vibetravels.ratelimit import make_rate_limit_key

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_allows_three_requests_per_minute() -> None:
    limiter = InMemoryRateLimiter(max_requests=3, window_seconds=60)
    key = make_rate_limit_key(1, "generation")

    for i in range(3):
        assert await limiter.check_quota(key, NOW + timedelta(seconds=i)) is None

    retry_after = await limiter.check_quota(key, NOW + timedelta(seconds=3))
    assert retry_after is not None
    assert retry_after.seconds == 57


@pytest.mark.asyncio
async def test_resets_after_window() -> None:
    limiter = InMemoryRateLimiter(max_requests=1, window_seconds=60)
    key = make_rate_limit_key(1, "generation")

    assert await limiter.check_quota(key, NOW) is None
    assert await limiter.check_quota(key, NOW) is not None
    assert await limiter.check_quota(key, NOW + timedelta(seconds=60)) is None


@pytest.mark.asyncio
async def test_users_are_limited_independently() -> None:
    limiter = InMemoryRateLimiter(max_requests=1, window_seconds=60)

    assert await limiter.check_quota(make_rate_limit_key(1, "generation"), NOW) is None
    assert await limiter.check_quota(make_rate_limit_key(2, "generation"), NOW) is None


def test_make_rate_limit_key() -> None:
    assert make_rate_limit_key(42, "generation") == "user:42:generation"
