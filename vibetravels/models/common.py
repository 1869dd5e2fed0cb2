"""Common enums shared across all models."""

from enum import Enum


class GenerationStatus(str, Enum):
    """Lifecycle of a generation attempt."""

    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"

    @classmethod
    def active(cls) -> tuple["GenerationStatus", ...]:
        """Statuses that hold the per-plan generation guard."""
        return (cls.pending, cls.processing)

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationStatus.completed, GenerationStatus.failed)


class PlanStatus(str, Enum):
    """Travel plan status."""

    draft = "draft"
    planned = "planned"
    completed = "completed"
    cancelled = "cancelled"


# Forward-only transitions; planned -> planned covers regeneration
PLAN_TRANSITIONS: dict[PlanStatus, frozenset[PlanStatus]] = {
    PlanStatus.draft: frozenset({PlanStatus.planned, PlanStatus.cancelled}),
    PlanStatus.planned: frozenset({PlanStatus.planned, PlanStatus.completed, PlanStatus.cancelled}),
    PlanStatus.completed: frozenset(),
    PlanStatus.cancelled: frozenset(),
}


def can_transition(current: PlanStatus, target: PlanStatus) -> bool:
    """Check whether a plan may move from ``current`` to ``target``."""
    return target in PLAN_TRANSITIONS[current]


class Pace(str, Enum):
    """Travel pace."""

    relaxed = "relaxed"
    moderate = "moderate"
    fast = "fast"


class BudgetLevel(str, Enum):
    """Budget level / travel style."""

    economy = "economy"
    standard = "standard"
    premium = "premium"


class TransportMode(str, Enum):
    """Preferred way of getting around."""

    walk_transit = "walk_transit"
    car_rental = "car_rental"
    mixed = "mixed"


class ActivityCategory(str, Enum):
    """Activity category in the generated itinerary."""

    sightseeing = "sightseeing"
    food = "food"
    entertainment = "entertainment"
    shopping = "shopping"
    relaxation = "relaxation"
    transport = "transport"


class DayPart(str, Enum):
    """Time of day a plan point belongs to."""

    morning = "morning"
    midday = "midday"
    afternoon = "afternoon"
    evening = "evening"


class LimitColor(str, Enum):
    """Usage band shown next to the monthly counter."""

    green = "green"
    yellow = "yellow"
    red = "red"
