"""
Instructor dashboard read models.
"""

from .base import ApiModel
from .content import StorageProvider


class CourseSummary(ApiModel):
    id: str
    title: str
    modules: int
    lessons: int
    enrollments: int
    avg_completion_percent: int


class StudentProgress(ApiModel):
    enrollment_id: str
    user_id: str
    completed_lessons: int
    total_lessons: int
    completion_percent: int


class ProviderUsage(ApiModel):
    files: int = 0
    bytes: int = 0


class StorageUsage(ApiModel):
    files: int
    total_bytes: int
    by_provider: dict[StorageProvider, ProviderUsage]


class InstructorDashboard(ApiModel):
    """Aggregated view of one course for its owner."""

    course: CourseSummary
    student_progress: list[StudentProgress]
    storage_usage: StorageUsage
