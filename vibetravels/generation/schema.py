"""Structured output contract sent to the language model."""

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from vibetravels.models.common import ActivityCategory
from vibetravels.models.itinerary import DATE_PATTERN, TIME_PATTERN, GeneratedItinerary

ITINERARY_SCHEMA_NAME = "travel_itinerary"


@dataclass(frozen=True)
class ResponseSchema:
    """Named JSON schema plus the pydantic model that checks responses against it."""

    name: str
    schema: dict[str, Any]
    model: type[BaseModel]

    def response_format(self) -> dict[str, Any]:
        """OpenAI ``response_format`` payload enforcing the schema strictly."""
        return {
            "type": "json_schema",
            "json_schema": {"name": self.name, "strict": True, "schema": self.schema},
        }


def _object(properties: dict[str, Any]) -> dict[str, Any]:
    # Strict structured outputs require every property listed and no extras
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


class SchemaBuilder:
    """Builds the fixed itinerary schema. Stateless."""

    @staticmethod
    def itinerary_schema() -> dict[str, Any]:
        """JSON schema of a generated itinerary."""
        activity = _object(
            {
                "time": {
                    "type": "string",
                    "pattern": TIME_PATTERN,
                    "description": "Time in HH:MM format",
                },
                "activity": {"type": "string", "description": "Description of activity"},
                "location": {"type": "string", "description": "Location name"},
                "cost_estimate": {"type": "number", "description": "Estimated cost in USD"},
                "category": {
                    "type": "string",
                    "enum": [c.value for c in ActivityCategory],
                    "description": "Activity category",
                },
            }
        )
        day = _object(
            {
                "day_number": {"type": "integer", "description": "Day number (1-indexed)"},
                "date": {
                    "type": "string",
                    "pattern": DATE_PATTERN,
                    "description": "Date in YYYY-MM-DD format",
                },
                "activities": {
                    "type": "array",
                    "description": "Activities for the day",
                    "items": activity,
                },
                "daily_budget": {"type": "number", "description": "Total budget for the day"},
            }
        )
        return _object(
            {
                "destination": {
                    "type": "string",
                    "description": "The destination city and country",
                },
                "duration_days": {"type": "integer", "description": "Number of days for the trip"},
                "days": {"type": "array", "description": "Daily itinerary", "items": day},
                "total_cost_estimate": {
                    "type": "number",
                    "description": "Total estimated cost for entire trip",
                },
                "tips": {
                    "type": "array",
                    "description": "General tips for the trip",
                    "items": {"type": "string"},
                },
            }
        )

    @classmethod
    def itinerary(cls) -> ResponseSchema:
        """Itinerary contract paired with its validating model."""
        return ResponseSchema(
            name=ITINERARY_SCHEMA_NAME,
            schema=cls.itinerary_schema(),
            model=GeneratedItinerary,
        )

    @classmethod
    def response_format(cls) -> dict[str, Any]:
        """Itinerary contract as an OpenAI ``response_format``."""
        return cls.itinerary().response_format()
