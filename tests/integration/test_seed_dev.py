"""Integration tests for dev seeding helper."""

from datetime import date

import pytest

from vibetravels.api.auth import DEFAULT_USER_ID
from vibetravels.db.seed_dev import DEV_USER_EMAIL, DEV_USER_ID, seed_dev_data
from vibetravels.models.common import PlanStatus


def test_dev_user_matches_stub_auth() -> None:
    """The seeded user is the one requests without a header act as."""
    assert DEV_USER_ID == DEFAULT_USER_ID


@pytest.mark.asyncio
async def test_seed_creates_user_profile_and_plan(sql_gateway, clock) -> None:
    result = await seed_dev_data(sql_gateway, clock)

    assert result.created is True
    assert result.user_id == DEV_USER_ID

    user = await sql_gateway.get_user(DEV_USER_ID)
    assert user.email == DEV_USER_EMAIL

    preferences = await sql_gateway.get_user_preferences(DEV_USER_ID)
    assert preferences.travel_pace == "moderate"
    assert preferences.interests == ["history", "art", "food"]

    plan = await sql_gateway.get_travel_plan(result.plan_id)
    assert plan.status == PlanStatus.draft
    assert plan.departure_date == date(2025, 7, 15)
    assert plan.number_of_days == 3


@pytest.mark.asyncio
async def test_seed_is_idempotent(sql_gateway, clock) -> None:
    await seed_dev_data(sql_gateway, clock)

    again = await seed_dev_data(sql_gateway, clock)

    assert again.created is False
    assert again.plan_id is None
