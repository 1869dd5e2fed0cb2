"""Repository protocol interfaces for data access."""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Protocol

from vibetravels.models.common import GenerationStatus, PlanStatus
from vibetravels.models.preferences import GenerationPreferences


@dataclass
class UserRecord:
    """User data record."""

    id: int
    email: str
    created_at: datetime


@dataclass
class UserPreferenceRecord:
    """Stored travel profile of a user."""

    user_id: int
    interests: list[str]
    travel_pace: str | None
    budget_level: str | None
    transport_preference: str | None
    dietary: str | None
    accessibility: str | None
    updated_at: datetime

    def to_payload(self) -> dict:
        """Preference payload in the shape accepted by the request validator."""
        return {
            "interests": list(self.interests),
            "pace": self.travel_pace,
            "budget_level": self.budget_level,
            "transport": self.transport_preference,
            "dietary": self.dietary,
            "accessibility": self.accessibility,
        }


@dataclass
class TravelPlanRecord:
    """Travel plan data record."""

    id: int
    user_id: int
    title: str
    destination: str
    departure_date: date
    number_of_days: int
    number_of_people: int
    budget_per_person: float | None
    budget_currency: str
    user_notes: str | None
    status: PlanStatus
    tips: list[str] | None
    created_at: datetime
    has_ai_plan: bool = False

    @property
    def end_date(self) -> date:
        """Last day of the trip."""
        return self.departure_date + timedelta(days=self.number_of_days - 1)


@dataclass
class AttemptRecord:
    """Generation attempt data record."""

    id: int
    user_id: int
    travel_plan_id: int | None
    status: GenerationStatus
    model_used: str | None
    tokens_used: int | None
    cost_estimate: float | None
    error_message: str | None
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime


@dataclass
class PlanPointRecord:
    """Single ordered point of a plan day."""

    order_number: int
    day_part: str
    name: str
    time: str | None = None
    description: str | None = None
    duration_minutes: int = 60
    location: str | None = None
    category: str | None = None
    cost_estimate: float | None = None
    google_maps_url: str | None = None


@dataclass
class PlanDayRecord:
    """Generated day of a travel plan with its points."""

    day_number: int
    date: date
    summary: str | None = None
    daily_budget: float | None = None
    points: list[PlanPointRecord] = field(default_factory=list)


@dataclass
class UsageLogEntry:
    """Usage accounting for one model call."""

    user_id: int
    generation_id: int | None
    model: str
    request_type: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0
    error_message: str | None = None


@dataclass
class UsageLogRecord(UsageLogEntry):
    """Stored usage log row."""

    id: int = 0
    created_at: datetime | None = None


class PersistenceGateway(Protocol):
    """Storage boundary of the generation pipeline.

    Timestamps are taken from the gateway's injected clock. Every attempt
    mutation that moves a status is conditional on the attempt still being
    active, so concurrent writers (job, reaper, retried job) cannot overwrite a
    terminal state.
    """

    # Users and preferences
    async def create_user(self, email: str) -> UserRecord:
        """Create a user."""
        ...

    async def get_user(self, user_id: int) -> UserRecord | None:
        """Get user by ID."""
        ...

    async def get_user_preferences(self, user_id: int) -> UserPreferenceRecord | None:
        """Get the stored travel profile of a user."""
        ...

    async def upsert_user_preferences(
        self, user_id: int, preferences: GenerationPreferences
    ) -> UserPreferenceRecord:
        """Create or replace the travel profile of a user."""
        ...

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
        ...

    async def get_travel_plan(self, plan_id: int) -> TravelPlanRecord | None:
        """Get travel plan by ID, including the derived ``has_ai_plan`` flag."""
        ...

    async def list_plan_days(self, plan_id: int) -> list[PlanDayRecord]:
        """List generated days of a plan ordered by day number, points ordered."""
        ...

    async def complete_past_plans(self, today: date) -> list[int]:
        """Mark planned plans whose end date is before ``today`` as completed.

        Returns:
            IDs of the plans that were completed
        """
        ...

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
        """Atomically check the monthly limit and insert a pending attempt.

        Raises:
            LimitExceededError: User already has ``limit`` attempts in the window
            GenerationInProgressError: Plan already has an active attempt
        """
        ...

    async def count_attempts(self, user_id: int, start: datetime, end: datetime) -> int:
        """Count attempts created in ``[start, end)`` regardless of status."""
        ...

    async def list_attempts(
        self, user_id: int, start: datetime, end: datetime
    ) -> list[AttemptRecord]:
        """List attempts created in ``[start, end)``, newest first."""
        ...

    async def get_attempt(self, attempt_id: int) -> AttemptRecord | None:
        """Get attempt by ID."""
        ...

    async def delete_pending_attempt(self, attempt_id: int) -> bool:
        """Delete an attempt that is still pending and never started.

        Returns:
            True if a row was deleted
        """
        ...

    async def mark_processing(self, attempt_id: int) -> AttemptRecord | None:
        """Move an active attempt to processing and stamp ``started_at``.

        Returns:
            Updated record, or None if the attempt is missing or terminal
        """
        ...

    async def record_attempt_error(self, attempt_id: int, message: str) -> None:
        """Store the latest error on an active attempt without ending it."""
        ...

    async def mark_failed(self, attempt_id: int, message: str) -> bool:
        """Fail an active attempt.

        Returns:
            True if this call wrote the terminal state
        """
        ...

    async def find_stale_attempts(self, created_before: datetime) -> list[AttemptRecord]:
        """List active attempts created strictly before ``created_before``, oldest first."""
        ...

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
        """Persist a generated itinerary and complete the attempt in one transaction.

        Existing days and points of the plan are replaced, never appended.

        Returns:
            True if persisted; False if the attempt was no longer active

        Raises:
            PersistenceError: Storage failure (the transaction is rolled back)
        """
        ...

    # Usage logs
    async def add_usage_log(self, entry: UsageLogEntry) -> UsageLogRecord:
        """Append a usage log row."""
        ...

    async def list_usage_logs(self, user_id: int) -> list[UsageLogRecord]:
        """List usage logs of a user, oldest first."""
        ...


@dataclass
class RetryAfter:
    """Rate limit retry-after information."""

    seconds: int


class RateLimiter(Protocol):
    """Rate limiter interface."""

    async def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Check if quota is available.

        Args:
            key: Rate limit key
            now: Current timestamp

        Returns:
            RetryAfter if over quota, None if allowed
        """
        ...
