"""Generation preference models - normalized user input."""

from typing import Annotated, Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StringConstraints, field_validator

from vibetravels.models.common import BudgetLevel, Pace, TransportMode

MAX_INTERESTS = 10

Interest = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]


def _normalize_choice(value: Any) -> Any:
    """Trim and lower-case enumerated string input; blank means unset."""
    if isinstance(value, str):
        value = value.strip().lower()
        return value or None
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class GenerationPreferences(BaseModel):
    """Preferences consumed by a single generation.

    Unknown keys are ignored so older clients and newer payloads keep working.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    pace: Pace | None = None
    budget_level: BudgetLevel | None = Field(
        None, validation_alias=AliasChoices("budget_level", "style")
    )
    transport: TransportMode | None = None
    interests: list[Interest] = Field(default_factory=list, max_length=MAX_INTERESTS)
    dietary: str | None = Field(None, max_length=500)
    accessibility: str | None = Field(None, max_length=500)
    additional_notes: str | None = Field(None, max_length=1000)

    @field_validator("pace", "budget_level", "transport", mode="before")
    @classmethod
    def normalize_choice(cls, v: Any) -> Any:
        """Accept case and whitespace variants of enumerated values."""
        return _normalize_choice(v)

    @field_validator("dietary", "accessibility", "additional_notes", mode="before")
    @classmethod
    def normalize_text(cls, v: Any) -> Any:
        """Treat blank free text as unset."""
        return _blank_to_none(v)

    @field_validator("interests", mode="before")
    @classmethod
    def normalize_interests(cls, v: Any) -> Any:
        """Allow a single comma-separated string and drop duplicates."""
        if v is None:
            return []
        if isinstance(v, str):
            v = [part for part in v.split(",")]
        if isinstance(v, list):
            seen: list[Any] = []
            for item in v:
                key = item.strip().lower() if isinstance(item, str) else item
                if key == "":
                    continue
                if key not in seen:
                    seen.append(key)
            return seen
        return v

    def to_payload(self) -> dict[str, Any]:
        """Plain-data form pinned into the job payload."""
        return self.model_dump(mode="json")
