"""Job queues - FIFO delivery of serialized generation jobs.

Jobs are stored as JSON, never as live objects. Delayed jobs (retries with
backoff) become deliverable once their ready time has passed.
"""

import asyncio
import logging
import time
from collections import deque
from datetime import datetime, timedelta
from typing import Protocol

from redis.asyncio import Redis

from vibetravels.clock import Clock, SystemClock
from vibetravels.models.jobs import QueuedJob

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.05


class JobQueue(Protocol):
    """Queue interface used by the service and the worker pool."""

    async def enqueue(self, job: QueuedJob, delay_seconds: float = 0) -> None:
        """Add a job, optionally deliverable only after ``delay_seconds``."""
        ...

    async def dequeue(self, timeout_seconds: float = 1.0) -> QueuedJob | None:
        """Take the oldest ready job, waiting up to ``timeout_seconds``."""
        ...

    async def size(self) -> int:
        """Number of jobs ready or delayed."""
        ...

    async def ping(self) -> bool:
        """Check that the backing store is reachable."""
        ...


class InMemoryJobQueue:
    """In-process queue for tests and single-process development."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._ready: deque[str] = deque()
        self._delayed: list[tuple[datetime, str]] = []

    async def enqueue(self, job: QueuedJob, delay_seconds: float = 0) -> None:
        """Add a job."""
        data = job.model_dump_json()
        if delay_seconds > 0:
            ready_at = self._clock.now() + timedelta(seconds=delay_seconds)
            self._delayed.append((ready_at, data))
            self._delayed.sort(key=lambda item: item[0])
        else:
            self._ready.append(data)

    def _promote_due(self) -> None:
        now = self._clock.now()
        while self._delayed and self._delayed[0][0] <= now:
            _, data = self._delayed.pop(0)
            self._ready.append(data)

    async def dequeue(self, timeout_seconds: float = 1.0) -> QueuedJob | None:
        """Take the oldest ready job."""
        deadline = time.monotonic() + timeout_seconds
        while True:
            self._promote_due()
            if self._ready:
                return QueuedJob.model_validate_json(self._ready.popleft())
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            await asyncio.sleep(min(POLL_INTERVAL_SECONDS, remaining))

    async def size(self) -> int:
        """Number of jobs ready or delayed."""
        return len(self._ready) + len(self._delayed)

    async def ping(self) -> bool:
        return True


class RedisJobQueue:
    """Durable queue on Redis.

    Ready jobs live in a list (LPUSH / BRPOP gives FIFO); delayed jobs live in
    a sorted set scored by their ready timestamp and are moved to the list by
    whichever consumer sees them due first.
    """

    def __init__(self, redis_client: Redis, name: str = "ai-generation") -> None:
        """Initialize queue.

        Args:
            redis_client: Async Redis client created with ``decode_responses=True``
            name: Key prefix of this queue
        """
        self._redis = redis_client
        self._ready_key = f"queue:{name}:ready"
        self._delayed_key = f"queue:{name}:delayed"

    async def enqueue(self, job: QueuedJob, delay_seconds: float = 0) -> None:
        """Add a job."""
        data = job.model_dump_json()
        if delay_seconds > 0:
            await self._redis.zadd(self._delayed_key, {data: time.time() + delay_seconds})
        else:
            await self._redis.lpush(self._ready_key, data)

    async def _promote_due(self) -> None:
        due = await self._redis.zrangebyscore(self._delayed_key, "-inf", time.time())
        for data in due:
            # ZREM succeeds for exactly one consumer
            if await self._redis.zrem(self._delayed_key, data):
                await self._redis.lpush(self._ready_key, data)

    async def dequeue(self, timeout_seconds: float = 1.0) -> QueuedJob | None:
        """Take the oldest ready job."""
        await self._promote_due()
        # BRPOP treats a zero timeout as "block forever"
        if timeout_seconds <= 0:
            data = await self._redis.rpop(self._ready_key)
        else:
            item = await self._redis.brpop([self._ready_key], timeout=timeout_seconds)
            data = item[1] if item is not None else None
        if data is None:
            return None
        return QueuedJob.model_validate_json(data)

    async def size(self) -> int:
        """Number of jobs ready or delayed."""
        ready = await self._redis.llen(self._ready_key)
        delayed = await self._redis.zcard(self._delayed_key)
        return int(ready) + int(delayed)

    async def ping(self) -> bool:
        return bool(await self._redis.ping())
