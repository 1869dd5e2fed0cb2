"""Generation request validation - raw preference input to a typed record."""

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from vibetravels.db.repositories import UserPreferenceRecord
from vibetravels.errors import PreferencesValidationError
from vibetravels.models.preferences import GenerationPreferences

# Input aliases accepted for canonical field names
FIELD_ALIASES = {"style": "budget_level"}


def _field_errors(exc: ValidationError) -> dict[str, list[str]]:
    """Group pydantic errors by top-level field."""
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        loc = error.get("loc") or ("preferences",)
        field = str(loc[0])
        field = FIELD_ALIASES.get(field, field)
        errors.setdefault(field, []).append(error["msg"])
    return errors


def _canonical_keys(payload: Mapping[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in payload.items():
        result[FIELD_ALIASES.get(key, key)] = value
    return result


class GenerationRequestValidator:
    """Validates and normalizes preference payloads.

    Every violated field is reported, not only the first one. Unknown keys are
    ignored.
    """

    def validate(self, payload: Mapping[str, Any] | None) -> GenerationPreferences:
        """Validate a raw preference payload.

        Args:
            payload: Free-form preference mapping (None means no preferences)

        Returns:
            Normalized preferences

        Raises:
            PreferencesValidationError: One or more fields are invalid
        """
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise PreferencesValidationError({"preferences": ["Input should be an object"]})

        try:
            return GenerationPreferences.model_validate(_canonical_keys(payload))
        except ValidationError as e:
            raise PreferencesValidationError(_field_errors(e)) from e

    def merge(
        self,
        stored: UserPreferenceRecord | None,
        overrides: Mapping[str, Any] | None = None,
    ) -> GenerationPreferences:
        """Validate the stored profile overlaid with per-request overrides.

        Args:
            stored: The user's current profile, if any
            overrides: Request-level values; ``None`` values do not override

        Returns:
            Normalized preferences to pin into the job payload
        """
        merged: dict[str, Any] = stored.to_payload() if stored else {}
        if overrides is not None:
            if not isinstance(overrides, Mapping):
                raise PreferencesValidationError({"preferences": ["Input should be an object"]})
            merged.update({k: v for k, v in _canonical_keys(overrides).items() if v is not None})
        return self.validate(merged)
