"""SQL implementations of repository interfaces."""

import logging
from datetime import date, datetime

from sqlalchemy import delete, exists, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from vibetravels.clock import Clock, SystemClock, as_utc
from vibetravels.db.models import (
    AIGeneration,
    AIUsageLog,
    PlanDay,
    PlanPoint,
    TravelPlan,
    User,
    UserPreference,
)
from vibetravels.db.repositories import (
    AttemptRecord,
    PlanDayRecord,
    PlanPointRecord,
    TravelPlanRecord,
    UsageLogEntry,
    UsageLogRecord,
    UserPreferenceRecord,
    UserRecord,
)
from vibetravels.errors import GenerationInProgressError, LimitExceededError, PersistenceError
from vibetravels.models.common import GenerationStatus, PlanStatus
from vibetravels.models.preferences import GenerationPreferences

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = [status.value for status in GenerationStatus.active()]

ACTIVE_ATTEMPT_INDEX = "uq_ai_generations_active_plan"
# SQLite reports the index columns instead of the index name
SQLITE_ACTIVE_ATTEMPT_COLUMNS = "ai_generations.user_id, ai_generations.travel_plan_id"


def _violates_active_attempt_index(error: IntegrityError) -> bool:
    message = str(error.orig)
    return ACTIVE_ATTEMPT_INDEX in message or SQLITE_ACTIVE_ATTEMPT_COLUMNS in message


def _to_user(row: User) -> UserRecord:
    return UserRecord(id=row.id, email=row.email, created_at=as_utc(row.created_at))


def _to_preferences(row: UserPreference) -> UserPreferenceRecord:
    return UserPreferenceRecord(
        user_id=row.user_id,
        interests=list(row.interests or []),
        travel_pace=row.travel_pace,
        budget_level=row.budget_level,
        transport_preference=row.transport_preference,
        dietary=row.dietary,
        accessibility=row.accessibility,
        updated_at=as_utc(row.updated_at),
    )


def _to_plan(row: TravelPlan, has_ai_plan: bool = False) -> TravelPlanRecord:
    return TravelPlanRecord(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        destination=row.destination,
        departure_date=row.departure_date,
        number_of_days=row.number_of_days,
        number_of_people=row.number_of_people,
        budget_per_person=row.budget_per_person,
        budget_currency=row.budget_currency,
        user_notes=row.user_notes,
        status=PlanStatus(row.status),
        tips=list(row.tips) if row.tips is not None else None,
        created_at=as_utc(row.created_at),
        has_ai_plan=has_ai_plan,
    )


def _to_attempt(row: AIGeneration) -> AttemptRecord:
    return AttemptRecord(
        id=row.id,
        user_id=row.user_id,
        travel_plan_id=row.travel_plan_id,
        status=GenerationStatus(row.status),
        model_used=row.model_used,
        tokens_used=row.tokens_used,
        cost_estimate=row.cost_estimate,
        error_message=row.error_message,
        started_at=as_utc(row.started_at) if row.started_at else None,
        completed_at=as_utc(row.completed_at) if row.completed_at else None,
        created_at=as_utc(row.created_at),
    )


def _to_day(row: PlanDay) -> PlanDayRecord:
    return PlanDayRecord(
        day_number=row.day_number,
        date=row.date,
        summary=row.summary,
        daily_budget=row.daily_budget,
        points=[
            PlanPointRecord(
                order_number=p.order_number,
                day_part=p.day_part,
                name=p.name,
                time=p.time,
                description=p.description,
                duration_minutes=p.duration_minutes,
                location=p.location,
                category=p.category,
                cost_estimate=p.cost_estimate,
                google_maps_url=p.google_maps_url,
            )
            for p in sorted(row.points, key=lambda p: p.order_number)
        ],
    )


def _to_usage_log(row: AIUsageLog) -> UsageLogRecord:
    return UsageLogRecord(
        id=row.id,
        user_id=row.user_id,
        generation_id=row.generation_id,
        model=row.model,
        request_type=row.request_type,
        prompt_tokens=row.prompt_tokens,
        completion_tokens=row.completion_tokens,
        total_tokens=row.total_tokens,
        estimated_cost=row.estimated_cost,
        error_message=row.error_message,
        created_at=as_utc(row.created_at),
    )


class SqlPersistenceGateway:
    """SQL implementation of PersistenceGateway.

    Each method runs in its own session and transaction. Attempt status
    changes are conditional ``UPDATE ... WHERE status IN (active)`` statements,
    so the row count tells the caller whether it won the transition.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    # Users and preferences
    async def create_user(self, email: str) -> UserRecord:
        """Create a user."""
        async with self._session_factory() as session:
            async with session.begin():
                user = User(email=email, created_at=self._clock.now())
                session.add(user)
                await session.flush()
                return _to_user(user)

    async def get_user(self, user_id: int) -> UserRecord | None:
        """Get user by ID."""
        async with self._session_factory() as session:
            user = await session.get(User, user_id)
            return _to_user(user) if user else None

    async def get_user_preferences(self, user_id: int) -> UserPreferenceRecord | None:
        """Get the stored travel profile of a user."""
        async with self._session_factory() as session:
            row = await session.scalar(
                select(UserPreference).where(UserPreference.user_id == user_id)
            )
            return _to_preferences(row) if row else None

    async def upsert_user_preferences(
        self, user_id: int, preferences: GenerationPreferences
    ) -> UserPreferenceRecord:
        """Create or replace the travel profile of a user."""
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.scalar(
                    select(UserPreference).where(UserPreference.user_id == user_id)
                )
                if row is None:
                    row = UserPreference(user_id=user_id)
                    session.add(row)

                row.interests = list(preferences.interests)
                row.travel_pace = preferences.pace.value if preferences.pace else None
                row.budget_level = (
                    preferences.budget_level.value if preferences.budget_level else None
                )
                row.transport_preference = (
                    preferences.transport.value if preferences.transport else None
                )
                row.dietary = preferences.dietary
                row.accessibility = preferences.accessibility
                row.updated_at = self._clock.now()
                await session.flush()
                return _to_preferences(row)

    # Travel plans
    async def create_travel_plan(
        self,
        user_id: int,
        *,
        title: str,
        destination: str,
        departure_date: date,
        number_of_days: int,
        number_of_people: int = 1,
        budget_per_person: float | None = None,
        budget_currency: str = "PLN",
        user_notes: str | None = None,
        status: PlanStatus = PlanStatus.draft,
    ) -> TravelPlanRecord:
        """Create a travel plan."""
        async with self._session_factory() as session:
            async with session.begin():
                plan = TravelPlan(
                    user_id=user_id,
                    title=title,
                    destination=destination,
                    departure_date=departure_date,
                    number_of_days=number_of_days,
                    number_of_people=number_of_people,
                    budget_per_person=budget_per_person,
                    budget_currency=budget_currency,
                    user_notes=user_notes,
                    status=status.value,
                    created_at=self._clock.now(),
                )
                session.add(plan)
                await session.flush()
                return _to_plan(plan)

    async def get_travel_plan(self, plan_id: int) -> TravelPlanRecord | None:
        """Get travel plan by ID, including the derived ``has_ai_plan`` flag."""
        async with self._session_factory() as session:
            plan = await session.get(TravelPlan, plan_id)
            if plan is None:
                return None
            has_days = await session.scalar(
                select(exists().where(PlanDay.travel_plan_id == plan_id))
            )
            return _to_plan(plan, has_ai_plan=bool(has_days))

    async def list_plan_days(self, plan_id: int) -> list[PlanDayRecord]:
        """List generated days of a plan ordered by day number."""
        async with self._session_factory() as session:
            result = await session.scalars(
                select(PlanDay)
                .where(PlanDay.travel_plan_id == plan_id)
                .options(selectinload(PlanDay.points))
                .order_by(PlanDay.day_number)
            )
            return [_to_day(day) for day in result.all()]

    async def complete_past_plans(self, today: date) -> list[int]:
        """Mark planned plans whose end date is before ``today`` as completed."""
        async with self._session_factory() as session:
            async with session.begin():
                # End date is departure + days - 1; narrow in SQL, finish in Python
                candidates = await session.scalars(
                    select(TravelPlan).where(
                        TravelPlan.status == PlanStatus.planned.value,
                        TravelPlan.departure_date < today,
                    )
                )
                plan_ids = [
                    plan.id for plan in candidates.all() if _to_plan(plan).end_date < today
                ]
                if plan_ids:
                    await session.execute(
                        update(TravelPlan)
                        .where(
                            TravelPlan.id.in_(plan_ids),
                            TravelPlan.status == PlanStatus.planned.value,
                        )
                        .values(status=PlanStatus.completed.value)
                    )
                return plan_ids

    # Generation attempts
    async def reserve_attempt(
        self,
        user_id: int,
        plan_id: int,
        *,
        limit: int,
        window_start: datetime,
        window_end: datetime,
    ) -> AttemptRecord:
        """Atomically check the monthly limit and insert a pending attempt."""
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    # Serializes concurrent reservations of the same user (no-op on SQLite)
                    await session.execute(
                        select(User.id).where(User.id == user_id).with_for_update()
                    )

                    used = await session.scalar(
                        select(func.count())
                        .select_from(AIGeneration)
                        .where(
                            AIGeneration.user_id == user_id,
                            AIGeneration.created_at >= window_start,
                            AIGeneration.created_at < window_end,
                        )
                    )
                    if (used or 0) >= limit:
                        raise LimitExceededError(limit=limit, used=used or 0)

                    active_id = await session.scalar(
                        select(AIGeneration.id)
                        .where(
                            AIGeneration.user_id == user_id,
                            AIGeneration.travel_plan_id == plan_id,
                            AIGeneration.status.in_(ACTIVE_STATUSES),
                        )
                        .limit(1)
                    )
                    if active_id is not None:
                        raise GenerationInProgressError(plan_id)

                    attempt = AIGeneration(
                        user_id=user_id,
                        travel_plan_id=plan_id,
                        status=GenerationStatus.pending.value,
                        created_at=self._clock.now(),
                    )
                    session.add(attempt)
                    await session.flush()
                    return _to_attempt(attempt)
            except IntegrityError as e:
                if _violates_active_attempt_index(e):
                    # Lost the race on the partial unique index
                    raise GenerationInProgressError(plan_id) from e
                logger.error(
                    "Failed to reserve generation attempt",
                    extra={"structured": {"user_id": user_id, "plan_id": plan_id}},
                )
                raise PersistenceError(f"Failed to reserve attempt: {type(e).__name__}") from e

    async def count_attempts(self, user_id: int, start: datetime, end: datetime) -> int:
        """Count attempts created in ``[start, end)`` regardless of status."""
        async with self._session_factory() as session:
            count = await session.scalar(
                select(func.count())
                .select_from(AIGeneration)
                .where(
                    AIGeneration.user_id == user_id,
                    AIGeneration.created_at >= start,
                    AIGeneration.created_at < end,
                )
            )
            return count or 0

    async def list_attempts(
        self, user_id: int, start: datetime, end: datetime
    ) -> list[AttemptRecord]:
        """List attempts created in ``[start, end)``, newest first."""
        async with self._session_factory() as session:
            result = await session.scalars(
                select(AIGeneration)
                .where(
                    AIGeneration.user_id == user_id,
                    AIGeneration.created_at >= start,
                    AIGeneration.created_at < end,
                )
                .order_by(AIGeneration.created_at.desc(), AIGeneration.id.desc())
            )
            return [_to_attempt(row) for row in result.all()]

    async def get_attempt(self, attempt_id: int) -> AttemptRecord | None:
        """Get attempt by ID."""
        async with self._session_factory() as session:
            row = await session.get(AIGeneration, attempt_id)
            return _to_attempt(row) if row else None

    async def delete_pending_attempt(self, attempt_id: int) -> bool:
        """Delete an attempt that is still pending and never started."""
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(AIGeneration).where(
                        AIGeneration.id == attempt_id,
                        AIGeneration.status == GenerationStatus.pending.value,
                        AIGeneration.started_at.is_(None),
                    )
                )
                return result.rowcount == 1

    async def mark_processing(self, attempt_id: int) -> AttemptRecord | None:
        """Move an active attempt to processing and stamp ``started_at``."""
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(AIGeneration)
                    .where(
                        AIGeneration.id == attempt_id,
                        AIGeneration.status.in_(ACTIVE_STATUSES),
                    )
                    .values(
                        status=GenerationStatus.processing.value,
                        started_at=self._clock.now(),
                    )
                )
                if result.rowcount != 1:
                    return None
                row = await session.get(AIGeneration, attempt_id, populate_existing=True)
                return _to_attempt(row) if row else None

    async def record_attempt_error(self, attempt_id: int, message: str) -> None:
        """Store the latest error on an active attempt without ending it."""
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(AIGeneration)
                    .where(
                        AIGeneration.id == attempt_id,
                        AIGeneration.status.in_(ACTIVE_STATUSES),
                    )
                    .values(error_message=message)
                )

    async def mark_failed(self, attempt_id: int, message: str) -> bool:
        """Fail an active attempt."""
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(AIGeneration)
                    .where(
                        AIGeneration.id == attempt_id,
                        AIGeneration.status.in_(ACTIVE_STATUSES),
                    )
                    .values(
                        status=GenerationStatus.failed.value,
                        error_message=message,
                        completed_at=self._clock.now(),
                    )
                )
                return result.rowcount == 1

    async def find_stale_attempts(self, created_before: datetime) -> list[AttemptRecord]:
        """List active attempts created strictly before ``created_before``."""
        async with self._session_factory() as session:
            result = await session.scalars(
                select(AIGeneration)
                .where(
                    AIGeneration.status.in_(ACTIVE_STATUSES),
                    AIGeneration.created_at < created_before,
                )
                .order_by(AIGeneration.created_at, AIGeneration.id)
            )
            return [_to_attempt(row) for row in result.all()]

    async def complete_generation(
        self,
        attempt_id: int,
        plan_id: int,
        days: list[PlanDayRecord],
        tips: list[str],
        *,
        model: str,
        tokens_used: int,
        cost_estimate: float,
    ) -> bool:
        """Persist a generated itinerary and complete the attempt in one transaction."""
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    attempt = await session.scalar(
                        select(AIGeneration)
                        .where(AIGeneration.id == attempt_id)
                        .with_for_update()
                    )
                    if attempt is None or attempt.status not in ACTIVE_STATUSES:
                        return False

                    plan = await session.get(TravelPlan, plan_id, with_for_update=True)
                    if plan is None:
                        raise PersistenceError(f"Travel plan {plan_id} no longer exists")

                    # Replace, never append: a retried attempt rewrites the same rows
                    day_ids = select(PlanDay.id).where(PlanDay.travel_plan_id == plan_id)
                    await session.execute(
                        delete(PlanPoint).where(PlanPoint.plan_day_id.in_(day_ids))
                    )
                    await session.execute(delete(PlanDay).where(PlanDay.travel_plan_id == plan_id))

                    for day in days:
                        session.add(
                            PlanDay(
                                travel_plan_id=plan_id,
                                day_number=day.day_number,
                                date=day.date,
                                summary=day.summary,
                                daily_budget=day.daily_budget,
                                points=[
                                    PlanPoint(
                                        order_number=p.order_number,
                                        day_part=p.day_part,
                                        time=p.time,
                                        name=p.name,
                                        description=p.description,
                                        duration_minutes=p.duration_minutes,
                                        location=p.location,
                                        category=p.category,
                                        cost_estimate=p.cost_estimate,
                                        google_maps_url=p.google_maps_url,
                                    )
                                    for p in day.points
                                ],
                            )
                        )

                    plan.status = PlanStatus.planned.value
                    plan.tips = list(tips)

                    attempt.status = GenerationStatus.completed.value
                    attempt.model_used = model
                    attempt.tokens_used = tokens_used
                    attempt.cost_estimate = cost_estimate
                    attempt.completed_at = self._clock.now()
                    return True
            except SQLAlchemyError as e:
                logger.error(
                    "Failed to persist itinerary",
                    extra={"structured": {"attempt_id": attempt_id, "plan_id": plan_id}},
                )
                raise PersistenceError(f"Failed to save itinerary: {type(e).__name__}") from e

    # Usage logs
    async def add_usage_log(self, entry: UsageLogEntry) -> UsageLogRecord:
        """Append a usage log row."""
        async with self._session_factory() as session:
            async with session.begin():
                row = AIUsageLog(
                    user_id=entry.user_id,
                    generation_id=entry.generation_id,
                    model=entry.model,
                    request_type=entry.request_type,
                    prompt_tokens=entry.prompt_tokens,
                    completion_tokens=entry.completion_tokens,
                    total_tokens=entry.total_tokens,
                    estimated_cost=entry.estimated_cost,
                    error_message=entry.error_message,
                    created_at=self._clock.now(),
                )
                session.add(row)
                await session.flush()
                return _to_usage_log(row)

    async def list_usage_logs(self, user_id: int) -> list[UsageLogRecord]:
        """List usage logs of a user, oldest first."""
        async with self._session_factory() as session:
            result = await session.scalars(
                select(AIUsageLog)
                .where(AIUsageLog.user_id == user_id)
                .order_by(AIUsageLog.created_at, AIUsageLog.id)
            )
            return [_to_usage_log(row) for row in result.all()]
