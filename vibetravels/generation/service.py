"""Generation request facade used by the HTTP API and the CLI."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from vibetravels.db.repositories import (
    AttemptRecord,
    PersistenceGateway,
    PlanDayRecord,
    TravelPlanRecord,
)
from vibetravels.errors import AttemptNotFoundError, InvalidPlanStateError, PlanNotFoundError
from vibetravels.generation.limits import UsageLimiter
from vibetravels.generation.preferences import GenerationRequestValidator
from vibetravels.models.common import PlanStatus, can_transition
from vibetravels.models.jobs import GenerationJobPayload, QueuedJob
from vibetravels.models.limits import LimitInfo
from vibetravels.queue.queue import JobQueue

logger = logging.getLogger(__name__)


@dataclass
class MonthlyResetReport:
    """Quota window after a monthly reset.

    Usage is counted from the attempt log, so there are no counters to clear;
    the report states the window now in effect.
    """

    window_start: datetime
    window_end: datetime
    reset_date: date
    limit: int


class GenerationService:
    """Validates, reserves and enqueues itinerary generation requests."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        limiter: UsageLimiter,
        queue: JobQueue,
        *,
        validator: GenerationRequestValidator | None = None,
    ) -> None:
        self._gateway = gateway
        self._limiter = limiter
        self._queue = queue
        self._validator = validator or GenerationRequestValidator()

    async def _load_plan(self, plan_id: int, user_id: int | None = None) -> TravelPlanRecord:
        plan = await self._gateway.get_travel_plan(plan_id)
        # Another user's plan is reported as missing
        if plan is None or (user_id is not None and plan.user_id != user_id):
            raise PlanNotFoundError(plan_id)
        return plan

    async def request_generation(
        self,
        user_id: int,
        plan_id: int,
        overrides: Mapping[str, Any] | None = None,
    ) -> AttemptRecord:
        """Accept a generation request and enqueue its job.

        Preferences are the user's stored profile overlaid with ``overrides``,
        validated and pinned into the job payload.

        Args:
            user_id: Requesting user
            plan_id: Travel plan to generate for
            overrides: Per-request preference values

        Returns:
            The pending attempt

        Raises:
            PlanNotFoundError: Plan does not exist or belongs to another user
            InvalidPlanStateError: Plan is completed or cancelled
            PreferencesValidationError: Preferences are invalid
            LimitExceededError: Monthly limit reached
            GenerationInProgressError: Plan already has an active attempt
        """
        plan = await self._load_plan(plan_id, user_id)
        if not can_transition(plan.status, PlanStatus.planned):
            raise InvalidPlanStateError(plan.status.value, PlanStatus.planned.value)

        stored = await self._gateway.get_user_preferences(user_id)
        preferences = self._validator.merge(stored, overrides)

        attempt = await self._limiter.reserve_slot(user_id, plan_id)
        job = QueuedJob(
            payload=GenerationJobPayload(
                travel_plan_id=plan_id,
                user_id=user_id,
                attempt_id=attempt.id,
                user_preferences=preferences.to_payload(),
            )
        )
        try:
            await self._queue.enqueue(job)
        except Exception:
            logger.exception(
                "Failed to enqueue generation job",
                extra={"structured": {"attempt_id": attempt.id, "plan_id": plan_id}},
            )
            await self._limiter.rollback(attempt.id)
            raise

        logger.info(
            "Generation job enqueued",
            extra={
                "structured": {
                    "job_id": job.job_id,
                    "attempt_id": attempt.id,
                    "plan_id": plan_id,
                    "user_id": user_id,
                }
            },
        )
        return attempt

    async def generate(
        self, plan_id: int, overrides: Mapping[str, Any] | None = None
    ) -> AttemptRecord:
        """Request generation on behalf of the plan's owner."""
        plan = await self._load_plan(plan_id)
        return await self.request_generation(plan.user_id, plan_id, overrides)

    async def get_attempt(self, attempt_id: int, user_id: int | None = None) -> AttemptRecord:
        """Look up an attempt's status.

        Raises:
            AttemptNotFoundError: Attempt does not exist or belongs to another user
        """
        attempt = await self._gateway.get_attempt(attempt_id)
        if attempt is None or (user_id is not None and attempt.user_id != user_id):
            raise AttemptNotFoundError(attempt_id)
        return attempt

    async def list_plan_days(self, plan_id: int, user_id: int | None = None) -> list[PlanDayRecord]:
        """Generated days of a plan with their points."""
        await self._load_plan(plan_id, user_id)
        return await self._gateway.list_plan_days(plan_id)

    async def get_limit_info(self, user_id: int) -> LimitInfo:
        return await self._limiter.get_limit_info(user_id)

    async def get_monthly_generations(self, user_id: int) -> list[AttemptRecord]:
        return await self._limiter.get_monthly_generations(user_id)

    def reset_monthly_limits(self) -> MonthlyResetReport:
        """Report the quota window in effect; nothing is deleted."""
        start, end = self._limiter.current_window()
        report = MonthlyResetReport(
            window_start=start,
            window_end=end,
            reset_date=self._limiter.get_reset_date(),
            limit=self._limiter.limit,
        )
        logger.info(
            "Monthly limits reset: usage is counted per calendar month",
            extra={
                "structured": {
                    "window_start": start.isoformat(),
                    "window_end": end.isoformat(),
                    "limit": report.limit,
                }
            },
        )
        return report
