"""
Subscription plans, usage snapshots and soft-limit status.

Limits are soft: exceeding one never blocks a write, it only shows up as a
positive ``*_exceeded_by`` field.
"""

from datetime import datetime
from enum import Enum

from pydantic import Field
from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import ApiModel, Base, UtcDateTime

# Largest integer a JSON client can represent exactly
UNBOUNDED = 2**53 - 1

MIB = 1024 * 1024
GIB = 1024 * MIB


class Plan(str, Enum):
    """Subscription tiers."""

    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class PlanLimits(ApiModel):
    max_created_courses: int
    max_active_enrollments: int
    max_owned_storage_bytes: int


PLAN_LIMITS: dict[Plan, PlanLimits] = {
    Plan.FREE: PlanLimits(
        max_created_courses=2,
        max_active_enrollments=5,
        max_owned_storage_bytes=50 * MIB,
    ),
    Plan.PRO: PlanLimits(
        max_created_courses=20,
        max_active_enrollments=100,
        max_owned_storage_bytes=5 * GIB,
    ),
    Plan.ENTERPRISE: PlanLimits(
        max_created_courses=UNBOUNDED,
        max_active_enrollments=UNBOUNDED,
        max_owned_storage_bytes=UNBOUNDED,
    ),
}


# ============================================================================
# Pydantic Models (for API/validation)
# ============================================================================


class UsageSnapshot(ApiModel):
    """Live usage of a user, derived from the domain store."""

    created_courses: int = 0
    active_enrollments: int = 0
    owned_storage_bytes: int = 0


class SoftLimit(ApiModel):
    created_courses_exceeded_by: int = 0
    active_enrollments_exceeded_by: int = 0
    owned_storage_bytes_exceeded_by: int = 0

    @property
    def exceeded(self) -> bool:
        return (
            self.created_courses_exceeded_by > 0
            or self.active_enrollments_exceeded_by > 0
            or self.owned_storage_bytes_exceeded_by > 0
        )


class SubscriptionStatus(ApiModel):
    """Plan, limits, live usage and per-dimension overage."""

    plan: Plan
    limits: PlanLimits
    usage: UsageSnapshot
    soft_limit: SoftLimit


class PlanChange(ApiModel):
    """Schema for an admin plan change."""

    user_id: str = Field(..., min_length=1)
    plan: Plan


class Subscription(ApiModel):
    """Complete subscription record."""

    user_id: str
    plan: Plan
    updated_at: UtcDateTime


# ============================================================================
# SQLAlchemy Models (for database)
# ============================================================================


class SubscriptionModel(Base):
    """SQLAlchemy model for subscriptions table. One row per user, created lazily."""

    __tablename__ = "subscriptions"

    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    plan: Mapped[str] = mapped_column(String, nullable=False, default=Plan.FREE.value)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
