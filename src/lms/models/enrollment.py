"""
Enrollment and Progress models.

Progress is the INSTANCE LAYER pairing an enrollment with each lesson of
its course. Rows are only ever created by fan-out (see DomainStore) and
their id is ``<enrollment_id>:<lesson_id>``.
"""

from datetime import datetime
from enum import Enum

from pydantic import Field
from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import ApiModel, Base, UtcDateTime


class ProgressStatus(str, Enum):
    """Per-lesson learner status."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


def progress_id(enrollment_id: str, lesson_id: str) -> str:
    return f"{enrollment_id}:{lesson_id}"


# ============================================================================
# Pydantic Models (for API/validation)
# ============================================================================


class EnrollmentCreate(ApiModel):
    """Schema for enrolling a user in a course."""

    id: str = Field(..., min_length=1)
    course_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)


class Enrollment(ApiModel):
    """Complete enrollment entity."""

    id: str
    course_id: str
    user_id: str
    enrolled_at: UtcDateTime


class ProgressUpdate(ApiModel):
    """Schema for a learner progress mutation."""

    enrollment_id: str = Field(..., min_length=1)
    lesson_id: str = Field(..., min_length=1)
    status: ProgressStatus


class Progress(ApiModel):
    """Complete progress entity."""

    id: str
    enrollment_id: str
    lesson_id: str
    status: ProgressStatus
    completed_at: UtcDateTime | None = None


class Completion(ApiModel):
    """Completion percentage of an enrollment."""

    enrollment_id: str
    completion: int


# ============================================================================
# SQLAlchemy Models (for database)
# ============================================================================


class EnrollmentModel(Base):
    """SQLAlchemy model for enrollments table."""

    __tablename__ = "enrollments"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    course_id: Mapped[str] = mapped_column(
        String, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    enrolled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("course_id", "user_id", name="uq_enrollments_course_user"),
        Index("idx_enrollments_course_id", "course_id"),
        Index("idx_enrollments_user_id", "user_id"),
    )


class ProgressModel(Base):
    """
    SQLAlchemy model for progress table.

    ``completed_at`` is set if and only if ``status`` is completed.
    """

    __tablename__ = "progress"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    enrollment_id: Mapped[str] = mapped_column(
        String, ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=False
    )
    lesson_id: Mapped[str] = mapped_column(
        String, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=ProgressStatus.NOT_STARTED.value
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("enrollment_id", "lesson_id", name="uq_progress_enrollment_lesson"),
        CheckConstraint(
            "(status = 'completed' AND completed_at IS NOT NULL) "
            "OR (status IN ('not_started', 'in_progress') AND completed_at IS NULL)",
            name="completed_at_matches_status",
        ),
        Index("idx_progress_enrollment_id", "enrollment_id"),
        Index("idx_progress_lesson_id", "lesson_id"),
    )
