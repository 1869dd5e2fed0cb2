"""Tests for the monthly generation limit."""

import asyncio
from datetime import UTC, date, datetime

import pytest

from vibetravels.clock import FixedClock
from vibetravels.db.inmemory import InMemoryPersistenceGateway
from vibetravels.errors import GenerationInProgressError, LimitExceededError
from vibetravels.generation.limits import LimiterMetrics, UsageLimiter, color_for
from vibetravels.models.common import LimitColor


class RecordingLimiterMetrics(LimiterMetrics):
    def __init__(self) -> None:
        self.rejections = 0

    def inc_limit_rejection(self) -> None:
        self.rejections += 1


async def _plans(
    gateway: InMemoryPersistenceGateway, create_plan, user_id: int, n: int
) -> list[int]:
    return [(await create_plan(gateway, user_id)).id for _ in range(n)]


@pytest.mark.asyncio
async def test_reserve_slot_creates_pending_attempt(gateway, clock, create_plan) -> None:
    """Reserving a slot inserts a pending attempt timestamped by the clock."""
    user = await gateway.create_user("a@example.com")
    plan = await create_plan(gateway, user.id)
    limiter = UsageLimiter(gateway, limit=10, clock=clock)

    attempt = await limiter.reserve_slot(user.id, plan.id)

    assert attempt.status.value == "pending"
    assert attempt.travel_plan_id == plan.id
    assert attempt.created_at == clock.now()
    assert await limiter.get_generation_count(user.id) == 1


@pytest.mark.asyncio
async def test_eleventh_reservation_is_rejected(gateway, clock, create_plan) -> None:
    """At the limit a reservation raises and inserts nothing."""
    user = await gateway.create_user("a@example.com")
    plan_ids = await _plans(gateway, create_plan, user.id, 11)
    metrics = RecordingLimiterMetrics()
    limiter = UsageLimiter(gateway, limit=10, clock=clock, metrics=metrics)

    for plan_id in plan_ids[:10]:
        await limiter.reserve_slot(user.id, plan_id)

    with pytest.raises(LimitExceededError) as exc_info:
        await limiter.reserve_slot(user.id, plan_ids[10])

    assert exc_info.value.limit == 10
    assert exc_info.value.used == 10
    assert await limiter.get_generation_count(user.id) == 10
    assert metrics.rejections == 1


@pytest.mark.asyncio
async def test_failed_attempts_still_count(gateway, clock, create_plan) -> None:
    """Every attempt counts toward the limit whatever its status."""
    user = await gateway.create_user("a@example.com")
    plan_ids = await _plans(gateway, create_plan, user.id, 2)
    limiter = UsageLimiter(gateway, limit=2, clock=clock)

    first = await limiter.reserve_slot(user.id, plan_ids[0])
    await gateway.mark_failed(first.id, "AIServiceError: boom")
    await limiter.reserve_slot(user.id, plan_ids[1])

    assert await limiter.has_reached_limit(user.id)
    assert await limiter.get_remaining(user.id) == 0


@pytest.mark.asyncio
async def test_attempts_from_previous_month_are_not_counted(create_plan) -> None:
    """The count only covers the current calendar month."""
    clock = FixedClock(datetime(2025, 5, 31, 23, 59, 59, tzinfo=UTC))
    gateway = InMemoryPersistenceGateway(clock=clock)
    user = await gateway.create_user("a@example.com")
    plan_ids = await _plans(gateway, create_plan, user.id, 2)
    limiter = UsageLimiter(gateway, limit=1, clock=clock)

    await limiter.reserve_slot(user.id, plan_ids[0])
    assert not await limiter.can_generate(user.id)

    clock.set(datetime(2025, 6, 1, 0, 0, 0, tzinfo=UTC))

    assert await limiter.can_generate(user.id)
    await limiter.reserve_slot(user.id, plan_ids[1])
    assert await limiter.get_generation_count(user.id) == 1


@pytest.mark.asyncio
async def test_month_window_respects_timezone(create_plan) -> None:
    """Month boundaries are evaluated in the configured timezone."""
    # 22:30 UTC on May 31 is already June 1 in Warsaw
    clock = FixedClock(datetime(2025, 5, 31, 22, 30, tzinfo=UTC))
    gateway = InMemoryPersistenceGateway(clock=clock)
    user = await gateway.create_user("a@example.com")
    plan = await create_plan(gateway, user.id)
    limiter = UsageLimiter(gateway, limit=10, clock=clock, timezone="Europe/Warsaw")

    await limiter.reserve_slot(user.id, plan.id)
    start, end = limiter.current_window()

    assert start == datetime(2025, 5, 31, 22, 0, tzinfo=UTC)
    assert end == datetime(2025, 6, 30, 22, 0, tzinfo=UTC)
    assert limiter.get_reset_date() == date(2025, 7, 1)
    assert await limiter.get_generation_count(user.id) == 1


@pytest.mark.asyncio
async def test_second_active_attempt_for_plan_is_rejected(gateway, clock, create_plan) -> None:
    """A plan may have only one pending or processing attempt."""
    user = await gateway.create_user("a@example.com")
    plan = await create_plan(gateway, user.id)
    limiter = UsageLimiter(gateway, limit=10, clock=clock)

    first = await limiter.reserve_slot(user.id, plan.id)
    with pytest.raises(GenerationInProgressError):
        await limiter.reserve_slot(user.id, plan.id)

    await gateway.mark_failed(first.id, "AIServiceError: boom")
    second = await limiter.reserve_slot(user.id, plan.id)
    assert second.id != first.id


@pytest.mark.asyncio
async def test_concurrent_reservations_at_limit_minus_one(gateway, clock, create_plan) -> None:
    """Two concurrent reservations with one slot left yield exactly one success."""
    user = await gateway.create_user("a@example.com")
    plan_ids = await _plans(gateway, create_plan, user.id, 4)
    limiter = UsageLimiter(gateway, limit=3, clock=clock)
    await limiter.reserve_slot(user.id, plan_ids[0])
    await limiter.reserve_slot(user.id, plan_ids[1])

    results = await asyncio.gather(
        limiter.reserve_slot(user.id, plan_ids[2]),
        limiter.reserve_slot(user.id, plan_ids[3]),
        return_exceptions=True,
    )

    errors = [r for r in results if isinstance(r, Exception)]
    assert len(errors) == 1
    assert isinstance(errors[0], LimitExceededError)
    assert await limiter.get_generation_count(user.id) == 3


@pytest.mark.asyncio
async def test_rollback_removes_only_pending_attempt(gateway, clock, create_plan) -> None:
    """Rollback frees the slot of an attempt that never started."""
    user = await gateway.create_user("a@example.com")
    plan_ids = await _plans(gateway, create_plan, user.id, 2)
    limiter = UsageLimiter(gateway, limit=10, clock=clock)

    pending = await limiter.reserve_slot(user.id, plan_ids[0])
    started = await limiter.reserve_slot(user.id, plan_ids[1])
    await gateway.mark_processing(started.id)

    assert await limiter.rollback(pending.id) is True
    assert await limiter.rollback(started.id) is False
    assert await limiter.get_generation_count(user.id) == 1


@pytest.mark.asyncio
async def test_limit_info(gateway, clock, create_plan) -> None:
    """Limit info reports usage, remaining slots, band and reset date."""
    user = await gateway.create_user("a@example.com")
    plan_ids = await _plans(gateway, create_plan, user.id, 7)
    limiter = UsageLimiter(gateway, limit=10, clock=clock)
    for plan_id in plan_ids:
        await limiter.reserve_slot(user.id, plan_id)

    info = await limiter.get_limit_info(user.id)

    assert info.used == 7
    assert info.remaining == 3
    assert info.percentage == 70.0
    assert info.can_generate is True
    assert info.display_text == "7/10"
    assert info.color == LimitColor.yellow
    assert info.reset_date == date(2025, 7, 1)


@pytest.mark.asyncio
async def test_monthly_generations_newest_first(gateway, clock, create_plan) -> None:
    user = await gateway.create_user("a@example.com")
    plan_ids = await _plans(gateway, create_plan, user.id, 2)
    limiter = UsageLimiter(gateway, limit=10, clock=clock)

    first = await limiter.reserve_slot(user.id, plan_ids[0])
    clock.advance(minutes=5)
    second = await limiter.reserve_slot(user.id, plan_ids[1])

    history = await limiter.get_monthly_generations(user.id)
    assert [a.id for a in history] == [second.id, first.id]


@pytest.mark.parametrize(
    ("percentage", "color"),
    [
        (0.0, LimitColor.green),
        (69.9, LimitColor.green),
        (70.0, LimitColor.yellow),
        (89.9, LimitColor.yellow),
        (90.0, LimitColor.red),
        (100.0, LimitColor.red),
    ],
)
def test_color_bands(percentage: float, color: LimitColor) -> None:
    assert color_for(percentage) == color
