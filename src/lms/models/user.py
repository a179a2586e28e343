"""
User and refresh-session models.

A User is created on the first successful identity exchange. Its role is
assigned once from the admin/instructor allow-lists and never re-derived.
``token_version`` is bumped to invalidate every token issued earlier.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import ApiModel, Base, TimestampMixin, UtcDateTime


class Role(str, Enum):
    """Platform role of a user."""

    ADMIN = "Admin"
    INSTRUCTOR = "Instructor"
    STUDENT = "Student"


@dataclass(frozen=True)
class Principal:
    """Authenticated identity attached to a request."""

    id: str
    email: str
    role: Role
    token_version: int


# ============================================================================
# Pydantic Models (for API/validation)
# ============================================================================


class User(ApiModel):
    """Complete user entity."""

    id: str
    email: str
    name: str
    role: Role
    token_version: int
    created_at: UtcDateTime
    updated_at: UtcDateTime


class UserSummary(ApiModel):
    """User fields exposed in token responses."""

    id: str
    email: str
    name: str
    role: Role


# ============================================================================
# SQLAlchemy Models (for database)
# ============================================================================


class UserModel(Base, TimestampMixin):
    """SQLAlchemy model for users table."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[str] = mapped_column(String, nullable=False, default=Role.STUDENT.value)
    token_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class RefreshSessionModel(Base):
    """
    SQLAlchemy model for refresh_sessions table.

    Only the SHA-256 of the refresh token is stored. A session is usable
    while ``revoked_at`` is NULL and ``expires_at`` lies in the future.
    """

    __tablename__ = "refresh_sessions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_refresh_sessions_user_id", "user_id"),
        Index("idx_refresh_sessions_active", "user_id", "revoked_at", "expires_at"),
    )
