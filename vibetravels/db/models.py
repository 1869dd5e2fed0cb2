"""SQLAlchemy ORM models for users, travel plans and generation attempts."""

import datetime as dt

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JsonType = JSON().with_variant(JSONB(), "postgresql")

# Partial index predicate: an attempt holds the per-plan guard while active
ACTIVE_ATTEMPT_PREDICATE = "status IN ('pending', 'processing')"


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class User(Base):
    """User table - owner of plans, preferences and generation attempts."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    preferences: Mapped["UserPreference | None"] = relationship(
        "UserPreference", back_populates="user", cascade="all, delete-orphan", uselist=False
    )
    travel_plans: Mapped[list["TravelPlan"]] = relationship(
        "TravelPlan", back_populates="user", cascade="all, delete-orphan"
    )
    generations: Mapped[list["AIGeneration"]] = relationship(
        "AIGeneration", back_populates="user", cascade="all, delete-orphan"
    )
    usage_logs: Mapped[list["AIUsageLog"]] = relationship(
        "AIUsageLog", back_populates="user", cascade="all, delete-orphan"
    )


class UserPreference(Base):
    """User preference table - 1:1 travel profile consumed by generation."""

    __tablename__ = "user_preferences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    interests: Mapped[list[str]] = mapped_column(JsonType, nullable=False, default=list)
    travel_pace: Mapped[str | None] = mapped_column(String(20), nullable=True)
    budget_level: Mapped[str | None] = mapped_column(String(20), nullable=True)
    transport_preference: Mapped[str | None] = mapped_column(String(20), nullable=True)
    dietary: Mapped[str | None] = mapped_column(Text, nullable=True)
    accessibility: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="preferences")


class TravelPlan(Base):
    """Travel plan table - the trip an itinerary is generated for."""

    __tablename__ = "travel_plans"
    __table_args__ = (
        Index("idx_travel_plans_user", "user_id"),
        Index("idx_travel_plans_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    destination: Mapped[str] = mapped_column(String(255), nullable=False)
    departure_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    number_of_days: Mapped[int] = mapped_column(Integer, nullable=False)
    number_of_people: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    budget_per_person: Mapped[float | None] = mapped_column(
        Numeric(10, 2, asdecimal=False), nullable=True
    )
    budget_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="PLN")
    user_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    tips: Mapped[list[str] | None] = mapped_column(JsonType, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="travel_plans")
    days: Mapped[list["PlanDay"]] = relationship(
        "PlanDay",
        back_populates="travel_plan",
        cascade="all, delete-orphan",
        order_by="PlanDay.day_number",
    )


class PlanDay(Base):
    """Plan day table - one generated day of a travel plan."""

    __tablename__ = "plan_days"
    __table_args__ = (
        UniqueConstraint("travel_plan_id", "day_number", name="uq_plan_day_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    travel_plan_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("travel_plans.id", ondelete="CASCADE"), nullable=False
    )
    day_number: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    daily_budget: Mapped[float | None] = mapped_column(
        Numeric(10, 2, asdecimal=False), nullable=True
    )

    # Relationships
    travel_plan: Mapped["TravelPlan"] = relationship("TravelPlan", back_populates="days")
    points: Mapped[list["PlanPoint"]] = relationship(
        "PlanPoint",
        back_populates="plan_day",
        cascade="all, delete-orphan",
        order_by="PlanPoint.order_number",
    )


class PlanPoint(Base):
    """Plan point table - ordered activity within a plan day."""

    __tablename__ = "plan_points"
    __table_args__ = (
        UniqueConstraint("plan_day_id", "order_number", name="uq_plan_point_order"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    plan_day_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("plan_days.id", ondelete="CASCADE"), nullable=False
    )
    order_number: Mapped[int] = mapped_column(Integer, nullable=False)
    day_part: Mapped[str] = mapped_column(String(20), nullable=False)
    time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    category: Mapped[str | None] = mapped_column(String(20), nullable=True)
    cost_estimate: Mapped[float | None] = mapped_column(
        Numeric(10, 2, asdecimal=False), nullable=True
    )
    google_maps_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    plan_day: Mapped["PlanDay"] = relationship("PlanDay", back_populates="points")


class AIGeneration(Base):
    """AI generation table - one user-initiated generation attempt."""

    __tablename__ = "ai_generations"
    __table_args__ = (
        Index("idx_ai_generations_user_created", "user_id", "created_at"),
        Index("idx_ai_generations_status_created", "status", "created_at"),
        # At most one active attempt per (user, plan)
        Index(
            "uq_ai_generations_active_plan",
            "user_id",
            "travel_plan_id",
            unique=True,
            postgresql_where=text(ACTIVE_ATTEMPT_PREDICATE),
            sqlite_where=text(ACTIVE_ATTEMPT_PREDICATE),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    # Referenced, not owned: deleting a plan keeps the attempt for quota accounting
    travel_plan_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("travel_plans.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    model_used: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tokens_used: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cost_estimate: Mapped[float | None] = mapped_column(
        Numeric(10, 6, asdecimal=False), nullable=True
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="generations")


class AIUsageLog(Base):
    """AI usage log table - cost accounting for every model call."""

    __tablename__ = "ai_usage_logs"
    __table_args__ = (Index("idx_ai_usage_logs_user_created", "user_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    generation_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("ai_generations.id", ondelete="SET NULL"), nullable=True
    )
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    prompt_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completion_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    estimated_cost: Mapped[float] = mapped_column(
        Numeric(10, 6, asdecimal=False), nullable=False, default=0
    )
    request_type: Mapped[str] = mapped_column(String(50), nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="usage_logs")
