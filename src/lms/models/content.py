"""
Lesson content metadata.

Only metadata is stored here; the bytes live with a storage provider.
One record per lesson, overwritten on re-attach.
"""

from datetime import datetime
from enum import Enum

from pydantic import Field
from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import ApiModel, Base, UtcDateTime


class StorageProvider(str, Enum):
    """Object storage backends lesson content can live in."""

    GDRIVE = "gdrive"
    S3 = "s3"
    R2 = "r2"


# ============================================================================
# Pydantic Models (for API/validation)
# ============================================================================


class LessonContentAttach(ApiModel):
    """Schema for attaching content metadata to a lesson."""

    provider: StorageProvider
    key: str = Field(..., min_length=1)
    file_id: str = Field(..., min_length=1)
    content_type: str = Field(..., min_length=1)
    size: int = Field(..., ge=0, strict=True)


class LessonContent(ApiModel):
    """Complete lesson content metadata."""

    lesson_id: str
    provider: StorageProvider
    key: str
    file_id: str
    content_type: str
    size: int
    updated_at: UtcDateTime


# ============================================================================
# SQLAlchemy Models (for database)
# ============================================================================


class LessonContentModel(Base):
    """SQLAlchemy model for lesson_contents table."""

    __tablename__ = "lesson_contents"

    lesson_id: Mapped[str] = mapped_column(
        String, ForeignKey("lessons.id", ondelete="CASCADE"), primary_key=True
    )
    provider: Mapped[str] = mapped_column(String, nullable=False)
    key: Mapped[str] = mapped_column("object_key", String, nullable=False)
    file_id: Mapped[str] = mapped_column("provider_file_id", String, nullable=False)
    content_type: Mapped[str] = mapped_column(String, nullable=False)
    size: Mapped[int] = mapped_column("size_bytes", BigInteger, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("size_bytes >= 0", name="size_non_negative"),
        CheckConstraint("provider IN ('gdrive', 's3', 'r2')", name="known_provider"),
        Index("idx_lesson_contents_provider", "provider"),
    )
