"""Models package - re-exports for convenience."""

from vibetravels.models.ai import AIResult, ModelOptions
from vibetravels.models.common import (
    ActivityCategory,
    BudgetLevel,
    DayPart,
    GenerationStatus,
    LimitColor,
    Pace,
    PlanStatus,
    TransportMode,
    can_transition,
)
from vibetravels.models.itinerary import GeneratedItinerary, ItineraryActivity, ItineraryDay
from vibetravels.models.jobs import GenerationJobPayload, JobOutcome, QueuedJob
from vibetravels.models.limits import LimitInfo
from vibetravels.models.preferences import GenerationPreferences

__all__ = [
    # Common
    "GenerationStatus",
    "PlanStatus",
    "Pace",
    "BudgetLevel",
    "TransportMode",
    "ActivityCategory",
    "DayPart",
    "LimitColor",
    "can_transition",
    # Preferences
    "GenerationPreferences",
    # Itinerary
    "GeneratedItinerary",
    "ItineraryDay",
    "ItineraryActivity",
    # Language model
    "ModelOptions",
    "AIResult",
    # Jobs
    "GenerationJobPayload",
    "QueuedJob",
    "JobOutcome",
    # Limits
    "LimitInfo",
]
