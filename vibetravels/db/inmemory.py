"""In-memory implementations of repository interfaces."""

import copy
import itertools
from datetime import date, datetime, timedelta

from vibetravels.clock import Clock, SystemClock
from vibetravels.db.repositories import (
    AttemptRecord,
    PlanDayRecord,
    RetryAfter,
    TravelPlanRecord,
    UsageLogEntry,
    UsageLogRecord,
    UserPreferenceRecord,
    UserRecord,
)
from vibetravels.errors import GenerationInProgressError, LimitExceededError, PersistenceError
from vibetravels.models.common import GenerationStatus, PlanStatus
from vibetravels.models.preferences import GenerationPreferences


class InMemoryPersistenceGateway:
    """In-memory implementation of PersistenceGateway.

    Methods contain no awaits between their check and their write, so each
    call is atomic with respect to other coroutines on the same event loop.
    Records are copied on the way in and out.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._ids = itertools.count(1)
        self._users: dict[int, UserRecord] = {}
        self._preferences: dict[int, UserPreferenceRecord] = {}
        self._plans: dict[int, TravelPlanRecord] = {}
        self._days: dict[int, list[PlanDayRecord]] = {}
        self._attempts: dict[int, AttemptRecord] = {}
        self._usage_logs: list[UsageLogRecord] = []

    def _next_id(self) -> int:
        return next(self._ids)

    # Users and preferences
    async def create_user(self, email: str) -> UserRecord:
        """Create a user."""
        user = UserRecord(id=self._next_id(), email=email, created_at=self._clock.now())
        self._users[user.id] = user
        return copy.copy(user)

    async def get_user(self, user_id: int) -> UserRecord | None:
        """Get user by ID."""
        user = self._users.get(user_id)
        return copy.copy(user) if user else None

    async def get_user_preferences(self, user_id: int) -> UserPreferenceRecord | None:
        """Get the stored travel profile of a user."""
        record = self._preferences.get(user_id)
        return copy.deepcopy(record) if record else None

    async def upsert_user_preferences(
        self, user_id: int, preferences: GenerationPreferences
    ) -> UserPreferenceRecord:
        """Create or replace the travel profile of a user."""
        record = UserPreferenceRecord(
            user_id=user_id,
            interests=list(preferences.interests),
            travel_pace=preferences.pace.value if preferences.pace else None,
            budget_level=preferences.budget_level.value if preferences.budget_level else None,
            transport_preference=preferences.transport.value if preferences.transport else None,
            dietary=preferences.dietary,
            accessibility=preferences.accessibility,
            updated_at=self._clock.now(),
        )
        self._preferences[user_id] = record
        return copy.deepcopy(record)

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
        plan = TravelPlanRecord(
            id=self._next_id(),
            user_id=user_id,
            title=title,
            destination=destination,
            departure_date=departure_date,
            number_of_days=number_of_days,
            number_of_people=number_of_people,
            budget_per_person=budget_per_person,
            budget_currency=budget_currency,
            user_notes=user_notes,
            status=status,
            tips=None,
            created_at=self._clock.now(),
        )
        self._plans[plan.id] = plan
        return copy.deepcopy(plan)

    async def get_travel_plan(self, plan_id: int) -> TravelPlanRecord | None:
        """Get travel plan by ID."""
        plan = self._plans.get(plan_id)
        if plan is None:
            return None
        result = copy.deepcopy(plan)
        result.has_ai_plan = bool(self._days.get(plan_id))
        return result

    async def list_plan_days(self, plan_id: int) -> list[PlanDayRecord]:
        """List generated days of a plan."""
        days = sorted(self._days.get(plan_id, []), key=lambda d: d.day_number)
        result = copy.deepcopy(days)
        for day in result:
            day.points.sort(key=lambda p: p.order_number)
        return result

    async def complete_past_plans(self, today: date) -> list[int]:
        """Mark planned plans that already ended as completed."""
        completed: list[int] = []
        for plan in self._plans.values():
            if plan.status == PlanStatus.planned and plan.end_date < today:
                plan.status = PlanStatus.completed
                completed.append(plan.id)
        return completed

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
        """Check the monthly limit and insert a pending attempt."""
        used = self._count(user_id, window_start, window_end)
        if used >= limit:
            raise LimitExceededError(limit=limit, used=used)

        for attempt in self._attempts.values():
            if (
                attempt.user_id == user_id
                and attempt.travel_plan_id == plan_id
                and attempt.status in GenerationStatus.active()
            ):
                raise GenerationInProgressError(plan_id)

        attempt = AttemptRecord(
            id=self._next_id(),
            user_id=user_id,
            travel_plan_id=plan_id,
            status=GenerationStatus.pending,
            model_used=None,
            tokens_used=None,
            cost_estimate=None,
            error_message=None,
            started_at=None,
            completed_at=None,
            created_at=self._clock.now(),
        )
        self._attempts[attempt.id] = attempt
        return copy.copy(attempt)

    def _count(self, user_id: int, start: datetime, end: datetime) -> int:
        return sum(
            1
            for a in self._attempts.values()
            if a.user_id == user_id and start <= a.created_at < end
        )

    async def count_attempts(self, user_id: int, start: datetime, end: datetime) -> int:
        """Count attempts created in the window."""
        return self._count(user_id, start, end)

    async def list_attempts(
        self, user_id: int, start: datetime, end: datetime
    ) -> list[AttemptRecord]:
        """List attempts created in the window, newest first."""
        attempts = [
            copy.copy(a)
            for a in self._attempts.values()
            if a.user_id == user_id and start <= a.created_at < end
        ]
        attempts.sort(key=lambda a: (a.created_at, a.id), reverse=True)
        return attempts

    async def get_attempt(self, attempt_id: int) -> AttemptRecord | None:
        """Get attempt by ID."""
        attempt = self._attempts.get(attempt_id)
        return copy.copy(attempt) if attempt else None

    async def delete_pending_attempt(self, attempt_id: int) -> bool:
        """Delete a pending attempt that never started."""
        attempt = self._attempts.get(attempt_id)
        if attempt is None:
            return False
        if attempt.status != GenerationStatus.pending or attempt.started_at is not None:
            return False
        del self._attempts[attempt_id]
        return True

    def _active(self, attempt_id: int) -> AttemptRecord | None:
        attempt = self._attempts.get(attempt_id)
        if attempt is None or attempt.status not in GenerationStatus.active():
            return None
        return attempt

    async def mark_processing(self, attempt_id: int) -> AttemptRecord | None:
        """Move an active attempt to processing."""
        attempt = self._active(attempt_id)
        if attempt is None:
            return None
        attempt.status = GenerationStatus.processing
        attempt.started_at = self._clock.now()
        return copy.copy(attempt)

    async def record_attempt_error(self, attempt_id: int, message: str) -> None:
        """Store the latest error on an active attempt."""
        attempt = self._active(attempt_id)
        if attempt is not None:
            attempt.error_message = message

    async def mark_failed(self, attempt_id: int, message: str) -> bool:
        """Fail an active attempt."""
        attempt = self._active(attempt_id)
        if attempt is None:
            return False
        attempt.status = GenerationStatus.failed
        attempt.error_message = message
        attempt.completed_at = self._clock.now()
        return True

    async def find_stale_attempts(self, created_before: datetime) -> list[AttemptRecord]:
        """List active attempts created before the cutoff, oldest first."""
        stale = [
            copy.copy(a)
            for a in self._attempts.values()
            if a.status in GenerationStatus.active() and a.created_at < created_before
        ]
        stale.sort(key=lambda a: (a.created_at, a.id))
        return stale

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
        """Replace the plan's days and complete the attempt."""
        attempt = self._active(attempt_id)
        if attempt is None:
            return False

        plan = self._plans.get(plan_id)
        if plan is None:
            raise PersistenceError(f"Travel plan {plan_id} no longer exists")
        self._days[plan_id] = copy.deepcopy(days)
        plan.status = PlanStatus.planned
        plan.tips = list(tips)

        attempt.status = GenerationStatus.completed
        attempt.model_used = model
        attempt.tokens_used = tokens_used
        attempt.cost_estimate = cost_estimate
        attempt.completed_at = self._clock.now()
        return True

    # Usage logs
    async def add_usage_log(self, entry: UsageLogEntry) -> UsageLogRecord:
        """Append a usage log row."""
        record = UsageLogRecord(
            **vars(entry), id=self._next_id(), created_at=self._clock.now()
        )
        self._usage_logs.append(record)
        return copy.copy(record)

    async def list_usage_logs(self, user_id: int) -> list[UsageLogRecord]:
        """List usage logs of a user, oldest first."""
        return [copy.copy(r) for r in self._usage_logs if r.user_id == user_id]


class InMemoryRateLimiter:
    """In-memory implementation of RateLimiter using fixed window."""

    def __init__(self, max_requests: int, window_seconds: int = 60) -> None:
        """Initialize rate limiter.

        Args:
            max_requests: Maximum requests per window
            window_seconds: Window size in seconds (default 60)
        """
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._windows: dict[str, tuple[datetime, int]] = {}

    async def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Check if quota is available."""
        if key in self._windows:
            window_start, count = self._windows[key]
            window_end = window_start + timedelta(seconds=self._window_seconds)

            # Window expired
            if now >= window_end:
                self._windows[key] = (now, 1)
                return None

            if count >= self._max_requests:
                seconds_remaining = int((window_end - now).total_seconds())
                return RetryAfter(seconds=max(1, seconds_remaining))

            self._windows[key] = (window_start, count + 1)
            return None

        # First request
        self._windows[key] = (now, 1)
        return None
