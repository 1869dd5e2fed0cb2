"""Monthly usage limit models."""

from datetime import date

from pydantic import BaseModel

from vibetravels.models.common import LimitColor


class LimitInfo(BaseModel):
    """Snapshot of a user's monthly generation quota."""

    used: int
    limit: int
    remaining: int
    percentage: float
    can_generate: bool
    reset_date: date
    display_text: str
    color: LimitColor
