"""Queue message models - job payloads are plain data, never live objects."""

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class GenerationJobPayload(BaseModel):
    """Payload of a queued itinerary generation."""

    travel_plan_id: int
    user_id: int
    attempt_id: int
    user_preferences: dict[str, Any] = Field(default_factory=dict)


class QueuedJob(BaseModel):
    """Envelope stored in the queue.

    ``try_number`` is 1-based and incremented by the worker on redelivery.
    """

    job_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    payload: GenerationJobPayload
    try_number: int = Field(1, ge=1)
    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def next_try(self) -> "QueuedJob":
        """Copy of this job for its next delivery."""
        return self.model_copy(update={"try_number": self.try_number + 1})


class JobOutcome(str, Enum):
    """Result of a job run that did not raise."""

    completed = "completed"
    # Attempt was already terminal (completed, failed or reaped)
    skipped = "skipped"
    # Model call succeeded but the attempt was reaped before persisting
    discarded = "discarded"
