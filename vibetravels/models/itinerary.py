"""Itinerary models - the structured output expected from the language model."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from vibetravels.models.common import ActivityCategory

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class ItineraryActivity(BaseModel):
    """Single scheduled activity."""

    model_config = ConfigDict(extra="forbid")

    time: Annotated[str, Field(pattern=TIME_PATTERN)]
    activity: str
    location: str
    cost_estimate: float
    category: ActivityCategory


class ItineraryDay(BaseModel):
    """One day of the itinerary."""

    model_config = ConfigDict(extra="forbid")

    day_number: Annotated[int, Field(ge=1)]
    date: Annotated[str, Field(pattern=DATE_PATTERN)]
    activities: list[ItineraryActivity]
    daily_budget: float


class GeneratedItinerary(BaseModel):
    """Complete itinerary matching the ``travel_itinerary`` response schema."""

    model_config = ConfigDict(extra="forbid")

    destination: str
    duration_days: Annotated[int, Field(ge=1)]
    days: list[ItineraryDay]
    total_cost_estimate: float
    tips: list[str]
