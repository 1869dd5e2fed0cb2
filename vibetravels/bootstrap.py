"""Composition root - wires configured components together."""

import logging
from dataclasses import dataclass

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncEngine

from vibetravels.clock import Clock, SystemClock
from vibetravels.config import Settings
from vibetravels.db.engine import create_async_engine_from_settings, create_session_factory
from vibetravels.db.inmemory import InMemoryPersistenceGateway, InMemoryRateLimiter
from vibetravels.db.models import Base
from vibetravels.db.repositories import PersistenceGateway, RateLimiter
from vibetravels.db.sql_repositories import SqlPersistenceGateway
from vibetravels.generation.job import GenerationJob
from vibetravels.generation.limits import UsageLimiter
from vibetravels.generation.preferences import GenerationRequestValidator
from vibetravels.generation.reaper import StuckJobReaper
from vibetravels.generation.service import GenerationService
from vibetravels.llm.client import AIClient, get_ai_client
from vibetravels.models.ai import ModelOptions
from vibetravels.queue.queue import InMemoryJobQueue, JobQueue, RedisJobQueue
from vibetravels.queue.worker import GenerationWorker
from vibetravels.ratelimit import RedisRateLimiter
from vibetravels.utils.logging import StructuredJobLogger
from vibetravels.utils.metrics import PrometheusGenerationMetrics

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Process-wide components."""

    settings: Settings
    clock: Clock
    gateway: PersistenceGateway
    limiter: UsageLimiter
    validator: GenerationRequestValidator
    queue: JobQueue
    ai_client: AIClient
    job: GenerationJob
    worker: GenerationWorker
    reaper: StuckJobReaper
    service: GenerationService
    rate_limiter: RateLimiter
    engine: AsyncEngine | None = None
    redis: aioredis.Redis | None = None

    async def init_db(self) -> None:
        """Create all tables (development shortcut for ``alembic upgrade``)."""
        if self.engine is None:
            return
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self.redis is not None:
            await self.redis.aclose()
        if self.engine is not None:
            await self.engine.dispose()


def build_services(
    settings: Settings,
    *,
    clock: Clock | None = None,
    ai_client: AIClient | None = None,
    gateway: PersistenceGateway | None = None,
    queue: JobQueue | None = None,
    rate_limiter: RateLimiter | None = None,
) -> Services:
    """Build components from settings.

    Without DATABASE_URL the in-memory gateway is used; without REDIS_URL the
    in-memory queue and rate limiter are used. Explicit arguments win over
    settings.
    """
    clock = clock or SystemClock()
    metrics = PrometheusGenerationMetrics()

    engine: AsyncEngine | None = None
    if gateway is None:
        if settings.database_url:
            engine = create_async_engine_from_settings(settings)
            gateway = SqlPersistenceGateway(create_session_factory(engine), clock=clock)
        else:
            logger.warning("DATABASE_URL not set, using in-memory persistence")
            gateway = InMemoryPersistenceGateway(clock=clock)

    redis_client: aioredis.Redis | None = None
    if settings.redis_url and (queue is None or rate_limiter is None):
        redis_client = aioredis.from_url(settings.redis_url, decode_responses=True)

    if queue is None:
        if redis_client is not None:
            queue = RedisJobQueue(redis_client, settings.queue_name)
        else:
            queue = InMemoryJobQueue(clock=clock)

    if rate_limiter is None:
        if redis_client is not None:
            rate_limiter = RedisRateLimiter(redis_client, settings.generation_requests_per_min)
        else:
            rate_limiter = InMemoryRateLimiter(settings.generation_requests_per_min)

    ai_client = ai_client or get_ai_client(settings)
    validator = GenerationRequestValidator()
    limiter = UsageLimiter(
        gateway,
        limit=settings.monthly_generation_limit,
        clock=clock,
        timezone=settings.limit_timezone,
        metrics=metrics,
    )
    job = GenerationJob(
        gateway,
        ai_client,
        options=ModelOptions.balanced(
            model=settings.openai_model, max_tokens=settings.ai_max_tokens
        ).model_copy(update={"temperature": settings.ai_temperature}),
        validator=validator,
        language=settings.itinerary_language,
        metrics=metrics,
        job_logger=StructuredJobLogger(),
    )
    worker = GenerationWorker(
        queue,
        job,
        concurrency=settings.worker_concurrency,
        tries=settings.job_tries,
        timeout_seconds=settings.job_timeout_seconds,
        backoff_seconds=settings.job_backoff_seconds,
        metrics=metrics,
    )
    reaper = StuckJobReaper(
        gateway,
        stuck_after_seconds=settings.stuck_after_seconds,
        clock=clock,
        metrics=metrics,
    )
    service = GenerationService(gateway, limiter, queue, validator=validator)

    return Services(
        settings=settings,
        clock=clock,
        gateway=gateway,
        limiter=limiter,
        validator=validator,
        queue=queue,
        ai_client=ai_client,
        job=job,
        worker=worker,
        reaper=reaper,
        service=service,
        rate_limiter=rate_limiter,
        engine=engine,
        redis=redis_client,
    )
