"""Dev seeding helper for stub authentication and local generation runs."""

import logging
from dataclasses import dataclass
from datetime import timedelta

from vibetravels.clock import Clock, SystemClock
from vibetravels.db.repositories import PersistenceGateway
from vibetravels.models.common import BudgetLevel, Pace, TransportMode
from vibetravels.models.preferences import GenerationPreferences

logger = logging.getLogger(__name__)

# Matches the default user of the stub auth in vibetravels/api/auth.py
DEV_USER_ID = 1
DEV_USER_EMAIL = "dev@example.com"


@dataclass
class SeedResult:
    """IDs of the seeded rows."""

    user_id: int
    plan_id: int | None
    created: bool


async def seed_dev_data(gateway: PersistenceGateway, clock: Clock | None = None) -> SeedResult:
    """Seed a dev user, their travel profile and a 3-day Paris draft plan.

    Idempotent: nothing is created when the dev user already exists.
    """
    existing = await gateway.get_user(DEV_USER_ID)
    if existing is not None:
        logger.info("Dev user already exists", extra={"structured": {"email": existing.email}})
        return SeedResult(user_id=existing.id, plan_id=None, created=False)

    user = await gateway.create_user(DEV_USER_EMAIL)
    await gateway.upsert_user_preferences(
        user.id,
        GenerationPreferences(
            pace=Pace.moderate,
            budget_level=BudgetLevel.standard,
            transport=TransportMode.walk_transit,
            interests=["history", "art", "food"],
        ),
    )

    today = (clock or SystemClock()).now().date()
    plan = await gateway.create_travel_plan(
        user.id,
        title="Weekend in Paris",
        destination="Paris, France",
        departure_date=today + timedelta(days=30),
        number_of_days=3,
        number_of_people=2,
        budget_per_person=1000.0,
        budget_currency="EUR",
        user_notes="First time in Paris, we love museums and good food.",
    )
    logger.info(
        "Dev seeding complete",
        extra={"structured": {"user_id": user.id, "plan_id": plan.id}},
    )
    return SeedResult(user_id=user.id, plan_id=plan.id, created=True)
