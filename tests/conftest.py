"""Shared pytest fixtures for all test suites."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, date, datetime
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from vibetravels.bootstrap import Services, build_services
from vibetravels.clock import FixedClock
from vibetravels.config import Settings
from vibetravels.db.engine import create_async_engine_from_url, create_session_factory
from vibetravels.db.inmemory import InMemoryPersistenceGateway
from vibetravels.db.models import Base
from vibetravels.db.repositories import PersistenceGateway, TravelPlanRecord
from vibetravels.db.sql_repositories import SqlPersistenceGateway
from vibetravels.llm.client import MockAIClient
from vibetravels.queue.queue import InMemoryJobQueue

# Mid-month, so tests can move around inside the window without crossing it
NOW = datetime(2025, 6, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
def clock() -> FixedClock:
    """Clock frozen at NOW."""
    return FixedClock(NOW)


@pytest.fixture
def gateway(clock: FixedClock) -> InMemoryPersistenceGateway:
    return InMemoryPersistenceGateway(clock=clock)


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine with all tables created.

    A file (not :memory:) so every pooled connection sees the same database.
    """
    engine = create_async_engine_from_url(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def sql_gateway(sqlite_engine: AsyncEngine, clock: FixedClock) -> SqlPersistenceGateway:
    return SqlPersistenceGateway(create_session_factory(sqlite_engine), clock=clock)


@pytest.fixture
def mock_ai() -> MockAIClient:
    return MockAIClient()


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and .env files."""
    return Settings(
        _env_file=None,
        database_url=None,
        redis_url=None,
        ai_use_mock=True,
        openai_api_key=None,
    )


@pytest.fixture
def queue(clock: FixedClock) -> InMemoryJobQueue:
    return InMemoryJobQueue(clock=clock)


@pytest.fixture
def services(
    settings: Settings,
    clock: FixedClock,
    gateway: InMemoryPersistenceGateway,
    mock_ai: MockAIClient,
    queue: InMemoryJobQueue,
) -> Services:
    """Fully wired in-memory components."""
    return build_services(settings, clock=clock, ai_client=mock_ai, gateway=gateway, queue=queue)


async def create_paris_plan(
    gateway: PersistenceGateway,
    user_id: int,
    *,
    number_of_days: int = 3,
    departure_date: date = date(2025, 7, 1),
) -> TravelPlanRecord:
    """Draft 3-day Paris plan with a 1000 budget."""
    return await gateway.create_travel_plan(
        user_id,
        title="Paris trip",
        destination="Paris, France",
        departure_date=departure_date,
        number_of_days=number_of_days,
        number_of_people=2,
        budget_per_person=1000.0,
        budget_currency="EUR",
    )


@pytest.fixture
def create_plan() -> Callable[..., Awaitable[TravelPlanRecord]]:
    """Factory creating a draft Paris plan on a given gateway."""
    return create_paris_plan
