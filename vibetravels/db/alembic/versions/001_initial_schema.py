"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates all tables:
- users, user_preferences
- travel_plans, plan_days, plan_points
- ai_generations, ai_usage_logs
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
ACTIVE_ATTEMPT_PREDICATE = "status IN ('pending', 'processing')"


def upgrade() -> None:
    """Create all tables."""
    # users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    # user_preferences table
    op.create_table(
        "user_preferences",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("interests", JSON_TYPE, nullable=False),
        sa.Column("travel_pace", sa.String(20), nullable=True),
        sa.Column("budget_level", sa.String(20), nullable=True),
        sa.Column("transport_preference", sa.String(20), nullable=True),
        sa.Column("dietary", sa.Text(), nullable=True),
        sa.Column("accessibility", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", name="uq_user_preferences_user"),
    )

    # travel_plans table
    op.create_table(
        "travel_plans",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("destination", sa.String(255), nullable=False),
        sa.Column("departure_date", sa.Date(), nullable=False),
        sa.Column("number_of_days", sa.Integer(), nullable=False),
        sa.Column("number_of_people", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("budget_per_person", sa.Numeric(10, 2), nullable=True),
        sa.Column("budget_currency", sa.String(3), server_default="PLN", nullable=False),
        sa.Column("user_notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), server_default="draft", nullable=False),
        sa.Column("tips", JSON_TYPE, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_travel_plans_user", "travel_plans", ["user_id"])
    op.create_index("idx_travel_plans_status", "travel_plans", ["status"])

    # plan_days table
    op.create_table(
        "plan_days",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("travel_plan_id", sa.Integer(), nullable=False),
        sa.Column("day_number", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("daily_budget", sa.Numeric(10, 2), nullable=True),
        sa.ForeignKeyConstraint(["travel_plan_id"], ["travel_plans.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("travel_plan_id", "day_number", name="uq_plan_day_number"),
    )

    # plan_points table
    op.create_table(
        "plan_points",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("plan_day_id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.Integer(), nullable=False),
        sa.Column("day_part", sa.String(20), nullable=False),
        sa.Column("time", sa.String(5), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), server_default=sa.text("60"), nullable=False),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("category", sa.String(20), nullable=True),
        sa.Column("cost_estimate", sa.Numeric(10, 2), nullable=True),
        sa.Column("google_maps_url", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["plan_day_id"], ["plan_days.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("plan_day_id", "order_number", name="uq_plan_point_order"),
    )

    # ai_generations table
    op.create_table(
        "ai_generations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("travel_plan_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("model_used", sa.String(100), nullable=True),
        sa.Column("tokens_used", sa.Integer(), nullable=True),
        sa.Column("cost_estimate", sa.Numeric(10, 6), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["travel_plan_id"], ["travel_plans.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_ai_generations_user_created", "ai_generations", ["user_id", "created_at"])
    op.create_index(
        "idx_ai_generations_status_created", "ai_generations", ["status", "created_at"]
    )
    op.create_index(
        "uq_ai_generations_active_plan",
        "ai_generations",
        ["user_id", "travel_plan_id"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_ATTEMPT_PREDICATE),
        sqlite_where=sa.text(ACTIVE_ATTEMPT_PREDICATE),
    )

    # ai_usage_logs table
    op.create_table(
        "ai_usage_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("generation_id", sa.Integer(), nullable=True),
        sa.Column("model", sa.String(100), nullable=False),
        sa.Column("prompt_tokens", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("completion_tokens", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("total_tokens", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("estimated_cost", sa.Numeric(10, 6), server_default=sa.text("0"), nullable=False),
        sa.Column("request_type", sa.String(50), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["generation_id"], ["ai_generations.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_ai_usage_logs_user_created", "ai_usage_logs", ["user_id", "created_at"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("ai_usage_logs")
    op.drop_index("uq_ai_generations_active_plan", table_name="ai_generations")
    op.drop_table("ai_generations")
    op.drop_table("plan_points")
    op.drop_table("plan_days")
    op.drop_table("travel_plans")
    op.drop_table("user_preferences")
    op.drop_table("users")
