"""
Course structure models: Course -> Module -> Lesson.

Modules and lessons are ordered by a positive ``position`` that is unique
within their parent.
"""

from datetime import datetime

from pydantic import Field
from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import ApiModel, Base, UtcDateTime

# ============================================================================
# Pydantic Models (for API/validation)
# ============================================================================


class CourseCreate(ApiModel):
    """Schema for creating a course."""

    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)


class Course(ApiModel):
    """Complete course entity."""

    id: str
    title: str
    created_by: str
    created_at: UtcDateTime


class ModuleCreate(ApiModel):
    """Schema for creating a module."""

    id: str = Field(..., min_length=1)
    course_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    position: int = Field(..., gt=0, strict=True)


class Module(ApiModel):
    """Complete module entity."""

    id: str
    course_id: str
    title: str
    position: int


class LessonCreate(ApiModel):
    """Schema for creating a lesson."""

    id: str = Field(..., min_length=1)
    module_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    position: int = Field(..., gt=0, strict=True)


class Lesson(ApiModel):
    """Complete lesson entity."""

    id: str
    module_id: str
    title: str
    position: int


# ============================================================================
# SQLAlchemy Models (for database)
# ============================================================================


class CourseModel(Base):
    """SQLAlchemy model for courses table."""

    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    created_by: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_courses_created_by", "created_by"),)


class ModuleModel(Base):
    """SQLAlchemy model for modules table."""

    __tablename__ = "modules"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    course_id: Mapped[str] = mapped_column(
        String, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("course_id", "position", name="uq_modules_course_position"),
        CheckConstraint("position > 0", name="position_positive"),
        Index("idx_modules_course_id", "course_id"),
    )


class LessonModel(Base):
    """SQLAlchemy model for lessons table."""

    __tablename__ = "lessons"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    module_id: Mapped[str] = mapped_column(
        String, ForeignKey("modules.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("module_id", "position", name="uq_lessons_module_position"),
        CheckConstraint("position > 0", name="position_positive"),
        Index("idx_lessons_module_id", "module_id"),
    )
