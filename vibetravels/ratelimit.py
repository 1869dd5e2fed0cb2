"""Per-user request rate limiting for generation requests."""

from datetime import datetime

from redis.asyncio import Redis

from vibetravels.db.repositories import RetryAfter


def make_rate_limit_key(user_id: int, bucket: str) -> str:
    """Rate limit key of a user's bucket, e.g. ``user:7:generation``."""
    return f"user:{user_id}:{bucket}"


class RedisRateLimiter:
    """Fixed-window limiter shared by every API process through Redis.

    Each window has its own counter key, so a counter never has to be reset;
    it simply expires after its window.
    """

    def __init__(self, redis_client: Redis, max_requests: int, window_seconds: int = 60) -> None:
        """Initialize rate limiter.

        Args:
            redis_client: Async Redis client
            max_requests: Requests allowed per window
            window_seconds: Window length in seconds
        """
        self._redis = redis_client
        self._max_requests = max_requests
        self._window_seconds = window_seconds

    async def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Count a request and tell whether it is over quota.

        Returns:
            RetryAfter until the window closes if over quota, None if allowed
        """
        now_ts = int(now.timestamp())
        window_start = now_ts - now_ts % self._window_seconds
        counter_key = f"ratelimit:{key}:{window_start}"

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.incr(counter_key)
            pipe.expire(counter_key, self._window_seconds)
            count, _ = await pipe.execute()

        if count <= self._max_requests:
            return None
        return RetryAfter(seconds=max(1, window_start + self._window_seconds - now_ts))
