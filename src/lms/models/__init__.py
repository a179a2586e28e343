"""
E-learning core models.

Exports all Pydantic and SQLAlchemy models for easy importing.
"""

# Base
from .base import ApiModel, Base, TimestampMixin, as_utc

# Content
from .content import (
    LessonContent,
    LessonContentAttach,
    LessonContentModel,
    StorageProvider,
)

# Course structure
from .course import (
    Course,
    CourseCreate,
    CourseModel,
    Lesson,
    LessonCreate,
    LessonModel,
    Module,
    ModuleCreate,
    ModuleModel,
)

# Dashboard
from .dashboard import (
    CourseSummary,
    InstructorDashboard,
    ProviderUsage,
    StorageUsage,
    StudentProgress,
)

# Enrollment and progress
from .enrollment import (
    Completion,
    Enrollment,
    EnrollmentCreate,
    EnrollmentModel,
    Progress,
    ProgressModel,
    ProgressStatus,
    ProgressUpdate,
    progress_id,
)

# Subscription
from .subscription import (
    PLAN_LIMITS,
    Plan,
    PlanChange,
    PlanLimits,
    SoftLimit,
    Subscription,
    SubscriptionModel,
    SubscriptionStatus,
    UsageSnapshot,
)

# Users
from .user import (
    Principal,
    RefreshSessionModel,
    Role,
    User,
    UserModel,
    UserSummary,
)

__all__ = [
    # Base
    "ApiModel",
    "Base",
    "TimestampMixin",
    "as_utc",
    # Content
    "LessonContent",
    "LessonContentAttach",
    "LessonContentModel",
    "StorageProvider",
    # Course structure
    "Course",
    "CourseCreate",
    "CourseModel",
    "Lesson",
    "LessonCreate",
    "LessonModel",
    "Module",
    "ModuleCreate",
    "ModuleModel",
    # Dashboard
    "CourseSummary",
    "InstructorDashboard",
    "ProviderUsage",
    "StorageUsage",
    "StudentProgress",
    # Enrollment and progress
    "Completion",
    "Enrollment",
    "EnrollmentCreate",
    "EnrollmentModel",
    "Progress",
    "ProgressModel",
    "ProgressStatus",
    "ProgressUpdate",
    "progress_id",
    # Subscription
    "PLAN_LIMITS",
    "Plan",
    "PlanChange",
    "PlanLimits",
    "SoftLimit",
    "Subscription",
    "SubscriptionModel",
    "SubscriptionStatus",
    "UsageSnapshot",
    # Users
    "Principal",
    "RefreshSessionModel",
    "Role",
    "User",
    "UserModel",
    "UserSummary",
]
