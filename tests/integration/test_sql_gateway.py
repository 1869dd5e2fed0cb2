"""Integration tests for the SQL persistence gateway on SQLite."""

import asyncio
from datetime import UTC, date, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from vibetravels.db.engine import create_session_factory
from vibetravels.db.models import AIGeneration, PlanDay, PlanPoint, TravelPlan, User
from vibetravels.db.repositories import PlanDayRecord, PlanPointRecord, UsageLogEntry
from vibetravels.db.sql_repositories import _violates_active_attempt_index
from vibetravels.errors import GenerationInProgressError, LimitExceededError, PersistenceError
from vibetravels.generation.limits import UsageLimiter
from vibetravels.models.common import BudgetLevel, GenerationStatus, Pace, PlanStatus
from vibetravels.models.preferences import GenerationPreferences


def _days(n: int, start: date = date(2025, 7, 1)) -> list[PlanDayRecord]:
    return [
        PlanDayRecord(
            day_number=i + 1,
            date=start + timedelta(days=i),
            summary=f"Day {i + 1}",
            daily_budget=100.0,
            points=[
                PlanPointRecord(order_number=1, day_part="morning", name="Louvre", time="09:00"),
                PlanPointRecord(order_number=2, day_part="evening", name="Seine cruise"),
            ],
        )
        for i in range(n)
    ]


async def _complete(sql_gateway, attempt_id: int, plan_id: int, n: int = 3) -> bool:
    return await sql_gateway.complete_generation(
        attempt_id,
        plan_id,
        _days(n),
        ["Book museums ahead"],
        model="gpt-4o-mini",
        tokens_used=1200,
        cost_estimate=0.0004,
    )


@pytest.mark.asyncio
async def test_user_and_preferences_roundtrip(sql_gateway) -> None:
    user = await sql_gateway.create_user("a@example.com")

    assert await sql_gateway.get_user_preferences(user.id) is None

    await sql_gateway.upsert_user_preferences(
        user.id, GenerationPreferences(pace=Pace.relaxed, interests=["art"])
    )
    stored = await sql_gateway.upsert_user_preferences(
        user.id,
        GenerationPreferences(budget_level=BudgetLevel.premium, interests=["food", "wine"]),
    )

    assert stored.travel_pace is None
    assert stored.budget_level == "premium"
    fetched = await sql_gateway.get_user_preferences(user.id)
    assert fetched.interests == ["food", "wine"]


@pytest.mark.asyncio
async def test_timestamps_come_back_as_utc(sql_gateway, clock, create_plan) -> None:
    """SQLite drops the offset; records are normalized back to aware UTC."""
    user = await sql_gateway.create_user("a@example.com")
    plan = await create_plan(sql_gateway, user.id)
    attempt = await UsageLimiter(sql_gateway, clock=clock).reserve_slot(user.id, plan.id)

    fetched = await sql_gateway.get_attempt(attempt.id)

    assert fetched.created_at.tzinfo == UTC
    assert fetched.created_at == clock.now()


@pytest.mark.asyncio
async def test_reservations_are_counted_in_window(sql_gateway, clock, create_plan) -> None:
    user = await sql_gateway.create_user("a@example.com")
    plans = [await create_plan(sql_gateway, user.id) for _ in range(3)]
    limiter = UsageLimiter(sql_gateway, limit=2, clock=clock)

    await limiter.reserve_slot(user.id, plans[0].id)
    await limiter.reserve_slot(user.id, plans[1].id)

    with pytest.raises(LimitExceededError):
        await limiter.reserve_slot(user.id, plans[2].id)

    assert await limiter.get_generation_count(user.id) == 2
    history = await limiter.get_monthly_generations(user.id)
    assert [a.travel_plan_id for a in history] == [plans[1].id, plans[0].id]


@pytest.mark.asyncio
async def test_concurrent_reservations_one_slot_left(sql_gateway, clock, create_plan) -> None:
    """With one slot left, exactly one of two concurrent reservations lands."""
    user = await sql_gateway.create_user("a@example.com")
    plans = [await create_plan(sql_gateway, user.id) for _ in range(3)]
    limiter = UsageLimiter(sql_gateway, limit=2, clock=clock)
    await limiter.reserve_slot(user.id, plans[0].id)

    results = await asyncio.gather(
        limiter.reserve_slot(user.id, plans[1].id),
        limiter.reserve_slot(user.id, plans[2].id),
        return_exceptions=True,
    )

    assert sum(isinstance(r, LimitExceededError) for r in results) == 1
    assert await limiter.get_generation_count(user.id) == 2


@pytest.mark.asyncio
async def test_one_active_attempt_per_plan(sql_gateway, clock, create_plan) -> None:
    user = await sql_gateway.create_user("a@example.com")
    plan = await create_plan(sql_gateway, user.id)
    limiter = UsageLimiter(sql_gateway, clock=clock)

    first = await limiter.reserve_slot(user.id, plan.id)
    with pytest.raises(GenerationInProgressError):
        await limiter.reserve_slot(user.id, plan.id)

    await sql_gateway.mark_failed(first.id, "AIServiceError: boom")
    second = await limiter.reserve_slot(user.id, plan.id)
    assert second.status == GenerationStatus.pending


@pytest.mark.asyncio
async def test_partial_unique_index_rejects_second_active_row(
    sqlite_engine, sql_gateway, clock, create_plan
) -> None:
    """The index backs the per-plan guard even for writes bypassing the gateway."""
    user = await sql_gateway.create_user("a@example.com")
    plan = await create_plan(sql_gateway, user.id)
    session_factory = create_session_factory(sqlite_engine)

    def attempt_row(status: str) -> AIGeneration:
        return AIGeneration(
            user_id=user.id, travel_plan_id=plan.id, status=status, created_at=clock.now()
        )

    async with session_factory() as session:
        async with session.begin():
            session.add_all([attempt_row("failed"), attempt_row("pending")])

    with pytest.raises(IntegrityError):
        async with session_factory() as session:
            async with session.begin():
                session.add(attempt_row("processing"))


@pytest.mark.asyncio
async def test_active_index_violation_is_recognised(
    sqlite_engine, sql_gateway, clock, create_plan
) -> None:
    user = await sql_gateway.create_user("a@example.com")
    plan = await create_plan(sql_gateway, user.id)
    await UsageLimiter(sql_gateway, clock=clock).reserve_slot(user.id, plan.id)
    session_factory = create_session_factory(sqlite_engine)

    with pytest.raises(IntegrityError) as excinfo:
        async with session_factory() as session:
            async with session.begin():
                session.add(
                    AIGeneration(
                        user_id=user.id,
                        travel_plan_id=plan.id,
                        status="processing",
                        created_at=clock.now(),
                    )
                )

    assert _violates_active_attempt_index(excinfo.value)


@pytest.mark.asyncio
async def test_reserving_for_missing_plan_is_a_storage_error(sql_gateway, clock) -> None:
    """A foreign key failure is not reported as a generation already in progress."""
    user = await sql_gateway.create_user("a@example.com")
    limiter = UsageLimiter(sql_gateway, clock=clock)

    with pytest.raises(PersistenceError):
        await limiter.reserve_slot(user.id, 9999)

    assert await limiter.get_generation_count(user.id) == 0


@pytest.mark.asyncio
async def test_complete_generation_persists_itinerary(sql_gateway, clock, create_plan) -> None:
    user = await sql_gateway.create_user("a@example.com")
    plan = await create_plan(sql_gateway, user.id)
    attempt = await UsageLimiter(sql_gateway, clock=clock).reserve_slot(user.id, plan.id)
    await sql_gateway.mark_processing(attempt.id)

    assert await _complete(sql_gateway, attempt.id, plan.id) is True

    stored = await sql_gateway.get_travel_plan(plan.id)
    assert stored.status == PlanStatus.planned
    assert stored.tips == ["Book museums ahead"]
    assert stored.has_ai_plan is True

    days = await sql_gateway.list_plan_days(plan.id)
    assert [d.day_number for d in days] == [1, 2, 3]
    assert [p.name for p in days[0].points] == ["Louvre", "Seine cruise"]
    assert days[0].points[0].duration_minutes == 60

    done = await sql_gateway.get_attempt(attempt.id)
    assert done.status == GenerationStatus.completed
    assert done.tokens_used == 1200
    assert done.cost_estimate == pytest.approx(0.0004)
    assert done.completed_at == clock.now()


@pytest.mark.asyncio
async def test_regeneration_replaces_previous_days(sql_gateway, clock, create_plan) -> None:
    user = await sql_gateway.create_user("a@example.com")
    plan = await create_plan(sql_gateway, user.id)
    limiter = UsageLimiter(sql_gateway, clock=clock)

    first = await limiter.reserve_slot(user.id, plan.id)
    await _complete(sql_gateway, first.id, plan.id, n=3)
    second = await limiter.reserve_slot(user.id, plan.id)
    await _complete(sql_gateway, second.id, plan.id, n=2)

    days = await sql_gateway.list_plan_days(plan.id)
    assert [d.day_number for d in days] == [1, 2]
    assert sum(len(d.points) for d in days) == 4


@pytest.mark.asyncio
async def test_terminal_state_is_written_once(sql_gateway, clock, create_plan) -> None:
    """Completing, failing or restarting a finished attempt is a no-op."""
    user = await sql_gateway.create_user("a@example.com")
    plan = await create_plan(sql_gateway, user.id)
    attempt = await UsageLimiter(sql_gateway, clock=clock).reserve_slot(user.id, plan.id)

    assert await _complete(sql_gateway, attempt.id, plan.id) is True
    assert await sql_gateway.mark_failed(attempt.id, "TimeoutReaped: late") is False
    assert await sql_gateway.mark_processing(attempt.id) is None
    assert await _complete(sql_gateway, attempt.id, plan.id) is False

    await sql_gateway.record_attempt_error(attempt.id, "AIServiceError: late")
    final = await sql_gateway.get_attempt(attempt.id)
    assert final.status == GenerationStatus.completed
    assert final.error_message is None


@pytest.mark.asyncio
async def test_failed_attempt_cannot_be_completed(sql_gateway, clock, create_plan) -> None:
    user = await sql_gateway.create_user("a@example.com")
    plan = await create_plan(sql_gateway, user.id)
    attempt = await UsageLimiter(sql_gateway, clock=clock).reserve_slot(user.id, plan.id)

    assert await sql_gateway.mark_failed(attempt.id, "TimeoutReaped: stuck") is True
    assert await _complete(sql_gateway, attempt.id, plan.id) is False

    assert await sql_gateway.list_plan_days(plan.id) == []
    assert (await sql_gateway.get_travel_plan(plan.id)).status == PlanStatus.draft


@pytest.mark.asyncio
async def test_rollback_deletes_only_unstarted_attempt(sql_gateway, clock, create_plan) -> None:
    user = await sql_gateway.create_user("a@example.com")
    plan = await create_plan(sql_gateway, user.id)
    attempt = await UsageLimiter(sql_gateway, clock=clock).reserve_slot(user.id, plan.id)
    await sql_gateway.mark_processing(attempt.id)

    assert await sql_gateway.delete_pending_attempt(attempt.id) is False

    other_plan = await create_plan(sql_gateway, user.id)
    pending = await UsageLimiter(sql_gateway, clock=clock).reserve_slot(user.id, other_plan.id)
    assert await sql_gateway.delete_pending_attempt(pending.id) is True
    assert await sql_gateway.get_attempt(pending.id) is None


@pytest.mark.asyncio
async def test_find_stale_attempts_cutoff_is_exclusive(sql_gateway, clock, create_plan) -> None:
    user = await sql_gateway.create_user("a@example.com")
    plan_a = await create_plan(sql_gateway, user.id)
    plan_b = await create_plan(sql_gateway, user.id)
    limiter = UsageLimiter(sql_gateway, clock=clock)

    old = await limiter.reserve_slot(user.id, plan_a.id)
    clock.advance(seconds=1)
    boundary = await limiter.reserve_slot(user.id, plan_b.id)

    stale = await sql_gateway.find_stale_attempts(boundary.created_at)

    assert [a.id for a in stale] == [old.id]


@pytest.mark.asyncio
async def test_complete_past_plans(sql_gateway, clock, create_plan) -> None:
    user = await sql_gateway.create_user("a@example.com")
    ended = await create_plan(sql_gateway, user.id, departure_date=date(2025, 6, 10))
    ongoing = await create_plan(sql_gateway, user.id, departure_date=date(2025, 6, 13))
    limiter = UsageLimiter(sql_gateway, clock=clock)
    for plan in (ended, ongoing):
        attempt = await limiter.reserve_slot(user.id, plan.id)
        await _complete(sql_gateway, attempt.id, plan.id)
    draft = await create_plan(sql_gateway, user.id, departure_date=date(2025, 6, 1))

    completed = await sql_gateway.complete_past_plans(date(2025, 6, 15))

    # Ended June 12; the ongoing trip ends June 15
    assert completed == [ended.id]
    assert (await sql_gateway.get_travel_plan(ongoing.id)).status == PlanStatus.planned
    assert (await sql_gateway.get_travel_plan(draft.id)).status == PlanStatus.draft


@pytest.mark.asyncio
async def test_usage_logs_in_order(sql_gateway, clock, create_plan) -> None:
    user = await sql_gateway.create_user("a@example.com")
    plan = await create_plan(sql_gateway, user.id)
    attempt = await UsageLimiter(sql_gateway, clock=clock).reserve_slot(user.id, plan.id)

    await sql_gateway.add_usage_log(
        UsageLogEntry(
            user_id=user.id,
            generation_id=attempt.id,
            model="gpt-4o-mini",
            request_type="plan_generation",
            error_message="AIServiceError: timeout",
        )
    )
    clock.advance(seconds=30)
    await sql_gateway.add_usage_log(
        UsageLogEntry(
            user_id=user.id,
            generation_id=attempt.id,
            model="gpt-4o-mini",
            request_type="plan_generation",
            prompt_tokens=800,
            completion_tokens=400,
            total_tokens=1200,
            estimated_cost=0.00036,
        )
    )

    logs = await sql_gateway.list_usage_logs(user.id)

    assert [log.total_tokens for log in logs] == [0, 1200]
    assert logs[0].error_message == "AIServiceError: timeout"
    assert logs[1].estimated_cost == pytest.approx(0.00036)


@pytest.mark.asyncio
async def test_deleting_plan_keeps_attempt_for_quota(
    sqlite_engine, sql_gateway, clock, create_plan
) -> None:
    user = await sql_gateway.create_user("a@example.com")
    plan = await create_plan(sql_gateway, user.id)
    limiter = UsageLimiter(sql_gateway, clock=clock)
    attempt = await limiter.reserve_slot(user.id, plan.id)
    await _complete(sql_gateway, attempt.id, plan.id)

    async with create_session_factory(sqlite_engine)() as session:
        async with session.begin():
            await session.delete(await session.get(TravelPlan, plan.id))

    kept = await sql_gateway.get_attempt(attempt.id)
    assert kept.travel_plan_id is None
    assert await limiter.get_generation_count(user.id) == 1
    assert await sql_gateway.list_plan_days(plan.id) == []


@pytest.mark.asyncio
async def test_deleting_user_cascades(sqlite_engine, sql_gateway, clock, create_plan) -> None:
    user = await sql_gateway.create_user("a@example.com")
    plan = await create_plan(sql_gateway, user.id)
    attempt = await UsageLimiter(sql_gateway, clock=clock).reserve_slot(user.id, plan.id)
    await _complete(sql_gateway, attempt.id, plan.id)

    session_factory = create_session_factory(sqlite_engine)
    async with session_factory() as session:
        async with session.begin():
            await session.delete(await session.get(User, user.id))

    async with session_factory() as session:
        for model in (TravelPlan, PlanDay, PlanPoint, AIGeneration):
            assert await session.scalar(select(func.count()).select_from(model)) == 0
