"""Error taxonomy for the generation pipeline.

Request-time errors (limit, validation, plan state) are raised synchronously
and never reach the queue. Execution-time errors are raised inside a queued
job and handed to the worker's retry policy.
"""


class GenerationError(Exception):
    """Base class for generation pipeline errors."""

    pass


# Request-time errors
class LimitExceededError(GenerationError):
    """User is at or over the monthly generation limit."""

    def __init__(self, limit: int, used: int) -> None:
        super().__init__(f"Monthly generation limit of {limit} exceeded")
        self.limit = limit
        self.used = used


class GenerationInProgressError(GenerationError):
    """Plan already has a pending or processing attempt."""

    def __init__(self, travel_plan_id: int) -> None:
        super().__init__(f"Generation already in progress for plan {travel_plan_id}")
        self.travel_plan_id = travel_plan_id


class PreferencesValidationError(GenerationError):
    """Preference payload failed validation.

    ``errors`` maps every offending field to its messages.
    """

    def __init__(self, errors: dict[str, list[str]]) -> None:
        fields = ", ".join(sorted(errors))
        super().__init__(f"Invalid preferences: {fields}")
        self.errors = errors


class PlanNotFoundError(GenerationError):
    """Travel plan does not exist or belongs to another user."""

    def __init__(self, travel_plan_id: int) -> None:
        super().__init__(f"Travel plan {travel_plan_id} not found")
        self.travel_plan_id = travel_plan_id


class InvalidPlanStateError(GenerationError):
    """Plan status does not allow the requested transition."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move travel plan from {current} to {target}")
        self.current = current
        self.target = target


# Execution-time errors
class AttemptNotFoundError(GenerationError):
    """Queued job references an attempt that no longer exists."""

    def __init__(self, attempt_id: int) -> None:
        super().__init__(f"Generation attempt {attempt_id} not found")
        self.attempt_id = attempt_id


class AIServiceError(GenerationError):
    """Language-model call failed (network, timeout or provider error)."""

    def __init__(
        self,
        message: str,
        *,
        provider_code: str | None = None,
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.provider_code = provider_code
        self.status_code = status_code
        self.retryable = retryable


class AIResponseFormatError(AIServiceError):
    """Model output was malformed or violated the response schema."""

    def __init__(self, message: str) -> None:
        super().__init__(message, provider_code="invalid_response")


class PersistenceError(GenerationError):
    """Storage failure while writing generation results."""

    pass


# Synthetic classification written by the stuck-job reaper
TIMEOUT_REAPED = "TimeoutReaped"
