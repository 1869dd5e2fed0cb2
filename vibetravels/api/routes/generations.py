"""Generation endpoints - request, status polling, generated days and quota."""

import datetime as dt
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from vibetravels.api.auth import get_current_user_id
from vibetravels.api.dependencies import get_services
from vibetravels.bootstrap import Services
from vibetravels.db.repositories import AttemptRecord, PlanDayRecord
from vibetravels.errors import (
    AttemptNotFoundError,
    GenerationInProgressError,
    InvalidPlanStateError,
    LimitExceededError,
    PlanNotFoundError,
    PreferencesValidationError,
)
from vibetravels.models.common import GenerationStatus
from vibetravels.models.limits import LimitInfo
from vibetravels.ratelimit import make_rate_limit_key

router = APIRouter()

RATE_LIMIT_BUCKET = "generation"


class GenerationRequest(BaseModel):
    """Request body for POST /plans/{plan_id}/generations."""

    preferences: dict[str, Any] | None = Field(
        None, description="Per-request overrides of the stored preference profile"
    )


class AttemptResponse(BaseModel):
    """Generation attempt status."""

    attempt_id: int
    plan_id: int | None
    status: GenerationStatus
    model_used: str | None = None
    tokens_used: int | None = None
    cost_estimate: float | None = None
    error_message: str | None = None
    created_at: dt.datetime
    started_at: dt.datetime | None = None
    completed_at: dt.datetime | None = None

    @classmethod
    def from_record(cls, attempt: AttemptRecord) -> "AttemptResponse":
        return cls(
            attempt_id=attempt.id,
            plan_id=attempt.travel_plan_id,
            status=attempt.status,
            model_used=attempt.model_used,
            tokens_used=attempt.tokens_used,
            cost_estimate=attempt.cost_estimate,
            error_message=attempt.error_message,
            created_at=attempt.created_at,
            started_at=attempt.started_at,
            completed_at=attempt.completed_at,
        )


class PointResponse(BaseModel):
    """Point of a generated day."""

    order_number: int
    day_part: str
    time: str | None
    name: str
    description: str | None
    duration_minutes: int
    location: str | None
    category: str | None
    cost_estimate: float | None
    google_maps_url: str | None


class DayResponse(BaseModel):
    """Generated day with its points."""

    day_number: int
    date: dt.date
    daily_budget: float | None
    points: list[PointResponse]

    @classmethod
    def from_record(cls, day: PlanDayRecord) -> "DayResponse":
        return cls(
            day_number=day.day_number,
            date=day.date,
            daily_budget=day.daily_budget,
            points=[
                PointResponse(
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


@router.post(
    "/plans/{plan_id}/generations",
    response_model=AttemptResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def create_generation(
    plan_id: int,
    user_id: Annotated[int, Depends(get_current_user_id)],
    services: Annotated[Services, Depends(get_services)],
    request: GenerationRequest | None = None,
) -> AttemptResponse:
    """Request itinerary generation for a plan.

    Returns:
        The pending attempt; poll GET /generations/{attempt_id} for the result
    """
    retry_after = await services.rate_limiter.check_quota(
        make_rate_limit_key(user_id, RATE_LIMIT_BUCKET), services.clock.now()
    )
    if retry_after is not None:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"error": "rate_limited", "retry_after_seconds": retry_after.seconds},
            headers={"Retry-After": str(retry_after.seconds)},
        )

    overrides = request.preferences if request else None
    try:
        attempt = await services.service.request_generation(user_id, plan_id, overrides)
    except PlanNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except InvalidPlanStateError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "invalid_plan_state", "message": str(e)},
        ) from e
    except PreferencesValidationError as e:
        raise HTTPException(
            status_code=422,
            detail={"error": "invalid_preferences", "errors": e.errors},
        ) from e
    except LimitExceededError as e:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"error": "limit_exceeded", "limit": e.limit, "used": e.used},
        ) from e
    except GenerationInProgressError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "generation_in_progress", "message": str(e)},
        ) from e

    return AttemptResponse.from_record(attempt)


@router.get("/generations/{attempt_id}", response_model=AttemptResponse)
async def get_generation(
    attempt_id: int,
    user_id: Annotated[int, Depends(get_current_user_id)],
    services: Annotated[Services, Depends(get_services)],
) -> AttemptResponse:
    """Get generation attempt status."""
    try:
        attempt = await services.service.get_attempt(attempt_id, user_id)
    except AttemptNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return AttemptResponse.from_record(attempt)


@router.get("/plans/{plan_id}/days", response_model=list[DayResponse])
async def get_plan_days(
    plan_id: int,
    user_id: Annotated[int, Depends(get_current_user_id)],
    services: Annotated[Services, Depends(get_services)],
) -> list[DayResponse]:
    """Get generated days of a plan, ordered by day number."""
    try:
        days = await services.service.list_plan_days(plan_id, user_id)
    except PlanNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return [DayResponse.from_record(day) for day in days]


@router.get("/limits", response_model=LimitInfo)
async def get_limits(
    user_id: Annotated[int, Depends(get_current_user_id)],
    services: Annotated[Services, Depends(get_services)],
) -> LimitInfo:
    """Get the user's monthly generation quota."""
    return await services.service.get_limit_info(user_id)
