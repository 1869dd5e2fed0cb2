"""Itinerary generation job - the unit of work executed by a queue worker.

State machine of the attempt: pending -> processing -> completed | failed.

- A terminal attempt is never touched again: a redelivered job is skipped.
- On success the itinerary replaces the plan's days in one transaction, so a
  job that runs twice leaves the same rows as a job that runs once.
- On failure the error is recorded and re-raised for the worker's retry
  policy; the attempt is failed only on the final try.
- A try killed by the worker timeout writes nothing; the stuck-job reaper
  fails the attempt later.
"""

import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from urllib.parse import quote_plus

from vibetravels.db.repositories import (
    PersistenceGateway,
    PlanDayRecord,
    PlanPointRecord,
    TravelPlanRecord,
    UsageLogEntry,
)
from vibetravels.errors import AttemptNotFoundError, PlanNotFoundError
from vibetravels.generation.preferences import GenerationRequestValidator
from vibetravels.generation.prompts import build_system_prompt, build_user_prompt
from vibetravels.generation.schema import SchemaBuilder
from vibetravels.llm.client import AIClient
from vibetravels.models.ai import ModelOptions
from vibetravels.models.common import DayPart
from vibetravels.models.itinerary import GeneratedItinerary
from vibetravels.models.jobs import GenerationJobPayload, JobOutcome

logger = logging.getLogger(__name__)

REQUEST_TYPE = "itinerary_generation"
DEFAULT_DURATION_MINUTES = 60
GOOGLE_MAPS_SEARCH_URL = "https://www.google.com/maps/search/?api=1&query={query}"


@dataclass(frozen=True)
class JobContext:
    """Identifiers of one job execution for logging."""

    attempt_id: int
    travel_plan_id: int
    user_id: int
    job_id: str | None = None


# Metrics interface (to be implemented by actual metrics system)
class GenerationMetrics:
    """Interface for generation job metrics."""

    def record_job(self, outcome: str, latency_ms: float) -> None:
        """Record a finished job try."""
        pass

    def record_usage(
        self, model: str, prompt_tokens: int, completion_tokens: int, cost_usd: float
    ) -> None:
        """Record model token usage and cost."""
        pass

    def inc_retry(self) -> None:
        """Increment job retry counter."""
        pass

    def inc_reaped(self, count: int) -> None:
        """Increment reaped attempt counter."""
        pass


# Logging interface
class JobLogger:
    """Interface for structured job logging."""

    def log_try(
        self,
        ctx: JobContext,
        try_number: int,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
    ) -> None:
        """Log one job try."""
        pass


def day_part_for(time_value: str | None) -> DayPart:
    """Map an HH:MM time onto a part of the day.

    06:00-11:59 morning, 12:00-14:59 midday, 15:00-18:59 afternoon, otherwise
    evening. Missing times default to morning.
    """
    if not time_value:
        return DayPart.morning

    hour = int(time_value[:2])
    if 6 <= hour < 12:
        return DayPart.morning
    if 12 <= hour < 15:
        return DayPart.midday
    if 15 <= hour < 19:
        return DayPart.afternoon
    return DayPart.evening


def google_maps_url(location: str | None) -> str | None:
    """Google Maps search link for a location name."""
    if not location:
        return None
    return GOOGLE_MAPS_SEARCH_URL.format(query=quote_plus(location))


def build_plan_days(plan: TravelPlanRecord, itinerary: GeneratedItinerary) -> list[PlanDayRecord]:
    """Convert a generated itinerary into plan day records.

    Day dates are derived from the plan's departure date, not from the dates
    the model wrote.
    """
    days: list[PlanDayRecord] = []
    for day in itinerary.days:
        points = [
            PlanPointRecord(
                order_number=index,
                day_part=day_part_for(activity.time).value,
                name=activity.activity,
                time=activity.time,
                description=activity.activity,
                duration_minutes=DEFAULT_DURATION_MINUTES,
                location=activity.location,
                category=activity.category.value,
                cost_estimate=activity.cost_estimate,
                google_maps_url=google_maps_url(activity.location),
            )
            for index, activity in enumerate(day.activities, start=1)
        ]
        days.append(
            PlanDayRecord(
                day_number=day.day_number,
                date=plan.departure_date + timedelta(days=day.day_number - 1),
                daily_budget=day.daily_budget,
                points=points,
            )
        )
    return days


def describe_error(error: BaseException) -> str:
    """Error message stored on the attempt."""
    message = str(error)
    return f"{type(error).__name__}: {message}" if message else type(error).__name__


class GenerationJob:
    """Runs one generation attempt end to end."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        ai_client: AIClient,
        *,
        options: ModelOptions | None = None,
        validator: GenerationRequestValidator | None = None,
        language: str = "English",
        metrics: GenerationMetrics | None = None,
        job_logger: JobLogger | None = None,
    ) -> None:
        """Initialize job runner.

        Args:
            gateway: Persistence gateway
            ai_client: Language-model client
            options: Model options (default: balanced preset)
            validator: Preference validator for the pinned payload
            language: Language the itinerary text is requested in
            metrics: Metrics recorder (optional, defaults to no-op)
            job_logger: Structured logger (optional, defaults to no-op)
        """
        self._gateway = gateway
        self._ai_client = ai_client
        self._options = options or ModelOptions.balanced()
        self._validator = validator or GenerationRequestValidator()
        self._language = language
        self._metrics = metrics or GenerationMetrics()
        self._logger = job_logger or JobLogger()
        self._schema = SchemaBuilder.itinerary()

    async def run(
        self,
        payload: GenerationJobPayload,
        *,
        try_number: int = 1,
        final_attempt: bool = True,
        job_id: str | None = None,
    ) -> JobOutcome:
        """Execute the job.

        Args:
            payload: Queued job payload
            try_number: 1-based delivery count
            final_attempt: Whether a failure should end the attempt as failed
            job_id: Queue job ID for logging

        Returns:
            JobOutcome of a run that did not raise

        Raises:
            AttemptNotFoundError: Attempt row is gone (never retried)
            Exception: Any execution failure, after it has been recorded
        """
        start_time = time.monotonic()
        ctx = JobContext(
            attempt_id=payload.attempt_id,
            travel_plan_id=payload.travel_plan_id,
            user_id=payload.user_id,
            job_id=job_id,
        )

        attempt = await self._gateway.get_attempt(payload.attempt_id)
        if attempt is None:
            raise AttemptNotFoundError(payload.attempt_id)

        if attempt.status.is_terminal:
            self._observe(ctx, try_number, JobOutcome.skipped.value, start_time)
            return JobOutcome.skipped

        # Conditional transition: loses to a concurrent reaper or completion
        if await self._gateway.mark_processing(payload.attempt_id) is None:
            self._observe(ctx, try_number, JobOutcome.skipped.value, start_time)
            return JobOutcome.skipped

        try:
            plan = await self._gateway.get_travel_plan(payload.travel_plan_id)
            if plan is None:
                raise PlanNotFoundError(payload.travel_plan_id)

            preferences = self._validator.validate(payload.user_preferences)
            result = await self._ai_client.generate(
                build_system_prompt(preferences, self._language),
                build_user_prompt(plan, preferences),
                self._schema,
                self._options,
            )

            itinerary = GeneratedItinerary.model_validate(result.parsed_content)
            persisted = await self._gateway.complete_generation(
                payload.attempt_id,
                plan.id,
                build_plan_days(plan, itinerary),
                list(itinerary.tips),
                model=result.model,
                tokens_used=result.total_tokens,
                cost_estimate=result.estimated_cost,
            )
        except Exception as e:
            try:
                await self._record_failure(ctx, e, final_attempt=final_attempt)
            except Exception:
                # The original error is still the one re-raised below
                logger.exception(
                    "Failed to record generation failure",
                    extra={
                        "structured": {
                            "attempt_id": ctx.attempt_id,
                            "error": describe_error(e),
                        }
                    },
                )
            self._observe(ctx, try_number, "failed", start_time, error_reason=type(e).__name__)
            raise

        await self._gateway.add_usage_log(
            UsageLogEntry(
                user_id=payload.user_id,
                generation_id=payload.attempt_id,
                model=result.model,
                request_type=REQUEST_TYPE,
                prompt_tokens=result.prompt_tokens,
                completion_tokens=result.completion_tokens,
                total_tokens=result.total_tokens,
                estimated_cost=result.estimated_cost,
            )
        )
        self._metrics.record_usage(
            result.model, result.prompt_tokens, result.completion_tokens, result.estimated_cost
        )

        if not persisted:
            logger.warning(
                "Attempt ended before itinerary was saved, discarding result",
                extra={"structured": {"attempt_id": payload.attempt_id}},
            )
            self._observe(ctx, try_number, JobOutcome.discarded.value, start_time)
            return JobOutcome.discarded

        self._observe(ctx, try_number, JobOutcome.completed.value, start_time)
        return JobOutcome.completed

    async def _record_failure(
        self, ctx: JobContext, error: Exception, *, final_attempt: bool
    ) -> None:
        message = describe_error(error)
        if final_attempt:
            await self._gateway.mark_failed(ctx.attempt_id, message)
        else:
            # Kept processing so the retried delivery can pick it up again
            await self._gateway.record_attempt_error(ctx.attempt_id, message)

        await self._gateway.add_usage_log(
            UsageLogEntry(
                user_id=ctx.user_id,
                generation_id=ctx.attempt_id,
                model=self._options.model,
                request_type=REQUEST_TYPE,
                error_message=message,
            )
        )

    def _observe(
        self,
        ctx: JobContext,
        try_number: int,
        outcome: str,
        start_time: float,
        error_reason: str | None = None,
    ) -> None:
        elapsed_ms = (time.monotonic() - start_time) * 1000
        self._metrics.record_job(outcome, elapsed_ms)
        self._logger.log_try(ctx, try_number, outcome, elapsed_ms, error_reason=error_reason)
