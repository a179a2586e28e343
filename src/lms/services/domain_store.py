"""
Domain Store for the course graph.

Holds Course -> Module -> Lesson, Enrollment -> Progress and LessonContent
and enforces their referential, uniqueness and ordering invariants.

Contract:
    - Every write is a single unit of work (one transaction). Writes are
      additionally serialized inside the process, so check-then-insert
      sequences (position uniqueness, one enrollment per course/user)
      cannot interleave. A lost race across processes surfaces as the
      database unique constraint and is reported as ``DuplicateError``.
    - Progress rows are created ONLY by fan-out, in the same transaction
      as the row that causes them:
        * creating a Lesson adds a ``not_started`` row for every existing
          Enrollment of the lesson's course;
        * creating an Enrollment adds a ``not_started`` row for every
          existing Lesson of the course.
      A reader therefore never observes a lesson or enrollment without its
      progress rows, and a missing row on update means the lesson lies
      outside the enrolled course.
    - Aggregations walk the parent-key indices (modules by course, lessons
      by module, enrollments by course, progress by enrollment) and never
      scan a whole table. Usage snapshots are derived on every call.
"""

import asyncio
import logging
import math
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lms.errors import (
    AccessDeniedError,
    DuplicateError,
    InvalidInputError,
    InvalidRelationError,
    NotFoundError,
)
from lms.models import (
    Course,
    CourseCreate,
    CourseModel,
    CourseSummary,
    Enrollment,
    EnrollmentCreate,
    EnrollmentModel,
    InstructorDashboard,
    Lesson,
    LessonContent,
    LessonContentAttach,
    LessonContentModel,
    LessonCreate,
    LessonModel,
    Module,
    ModuleCreate,
    ModuleModel,
    Progress,
    ProgressModel,
    ProgressStatus,
    ProgressUpdate,
    ProviderUsage,
    StorageProvider,
    StorageUsage,
    StudentProgress,
    UsageSnapshot,
    progress_id,
)
from lms.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def completion_percent(completed: int, total: int) -> int:
    """round(100 * completed / total), half up; 0 when there is nothing to complete."""
    if total == 0:
        return 0
    return round_half_up(100 * completed / total)


class DomainStore:
    """
    Repository over the course graph.

    Usage:
        store = DomainStore(session_factory)
        course = await store.create_course(CourseCreate(id="c1", title="Intro"), created_by=user_id)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: Clock = utcnow):
        self._session_factory = session_factory
        self._clock = clock
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _unit_of_work(self) -> AsyncIterator[AsyncSession]:
        async with self._write_lock:
            async with self._session_factory() as session:
                try:
                    async with session.begin():
                        yield session
                except IntegrityError as exc:
                    logger.warning("Write rejected by a database constraint: %s", exc.orig)
                    raise DuplicateError("conflicting row already exists") from exc

    @asynccontextmanager
    async def _reader(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            yield session

    # ------------------------------------------------------------------
    # Courses, modules, lessons
    # ------------------------------------------------------------------

    async def create_course(self, data: CourseCreate, created_by: str) -> Course:
        async with self._unit_of_work() as session:
            if await session.get(CourseModel, data.id):
                raise DuplicateError(f"course already exists: {data.id}")

            row = CourseModel(
                id=data.id,
                title=data.title,
                created_by=created_by,
                created_at=self._clock(),
            )
            session.add(row)
            return Course.model_validate(row)

    async def get_course(self, course_id: str) -> Course:
        async with self._reader() as session:
            row = await session.get(CourseModel, course_id)
            if not row:
                raise NotFoundError(f"course does not exist: {course_id}")
            return Course.model_validate(row)

    async def create_module(self, data: ModuleCreate) -> Module:
        if data.position <= 0:
            raise InvalidInputError("position must be positive")

        async with self._unit_of_work() as session:
            if not await session.get(CourseModel, data.course_id):
                raise InvalidRelationError(f"course does not exist: {data.course_id}")
            if await session.get(ModuleModel, data.id):
                raise DuplicateError(f"module already exists: {data.id}")

            taken = await session.scalar(
                select(ModuleModel.id).where(
                    ModuleModel.course_id == data.course_id,
                    ModuleModel.position == data.position,
                )
            )
            if taken:
                raise DuplicateError(f"module position already used in course: {data.course_id}")

            row = ModuleModel(
                id=data.id,
                course_id=data.course_id,
                title=data.title,
                position=data.position,
            )
            session.add(row)
            return Module.model_validate(row)

    async def create_lesson(self, data: LessonCreate) -> Lesson:
        """Create a lesson and fan out a progress row to every enrollment of its course."""
        if data.position <= 0:
            raise InvalidInputError("position must be positive")

        async with self._unit_of_work() as session:
            module = await session.get(ModuleModel, data.module_id)
            if not module:
                raise InvalidRelationError(f"module does not exist: {data.module_id}")
            if await session.get(LessonModel, data.id):
                raise DuplicateError(f"lesson already exists: {data.id}")

            taken = await session.scalar(
                select(LessonModel.id).where(
                    LessonModel.module_id == data.module_id,
                    LessonModel.position == data.position,
                )
            )
            if taken:
                raise DuplicateError(f"lesson position already used in module: {data.module_id}")

            row = LessonModel(
                id=data.id,
                module_id=data.module_id,
                title=data.title,
                position=data.position,
            )
            session.add(row)
            await session.flush()

            enrollment_ids = (
                await session.scalars(
                    select(EnrollmentModel.id).where(EnrollmentModel.course_id == module.course_id)
                )
            ).all()
            self._fan_out(session, enrollment_ids=enrollment_ids, lesson_ids=[row.id])

            logger.debug("Lesson %s fanned out to %d enrollments", row.id, len(enrollment_ids))
            return Lesson.model_validate(row)

    async def course_id_for_module(self, module_id: str) -> str:
        async with self._reader() as session:
            course_id = await session.scalar(
                select(ModuleModel.course_id).where(ModuleModel.id == module_id)
            )
            if course_id is None:
                raise NotFoundError(f"module does not exist: {module_id}")
            return course_id

    async def course_id_for_lesson(self, lesson_id: str) -> str:
        """Resolve Lesson -> Module -> Course."""
        async with self._reader() as session:
            course_id = await session.scalar(
                select(ModuleModel.course_id)
                .join(LessonModel, LessonModel.module_id == ModuleModel.id)
                .where(LessonModel.id == lesson_id)
            )
            if course_id is None:
                raise NotFoundError(f"lesson does not exist: {lesson_id}")
            return course_id

    # ------------------------------------------------------------------
    # Enrollments and progress
    # ------------------------------------------------------------------

    async def enroll(self, data: EnrollmentCreate) -> Enrollment:
        """Enroll a user and fan out a progress row for every lesson of the course."""
        async with self._unit_of_work() as session:
            if not await session.get(CourseModel, data.course_id):
                raise InvalidRelationError(f"course does not exist: {data.course_id}")
            if await session.get(EnrollmentModel, data.id):
                raise DuplicateError(f"enrollment already exists: {data.id}")

            existing = await session.scalar(
                select(EnrollmentModel.id).where(
                    EnrollmentModel.course_id == data.course_id,
                    EnrollmentModel.user_id == data.user_id,
                )
            )
            if existing:
                raise DuplicateError(f"student already enrolled in course: {data.course_id}")

            row = EnrollmentModel(
                id=data.id,
                course_id=data.course_id,
                user_id=data.user_id,
                enrolled_at=self._clock(),
            )
            session.add(row)
            await session.flush()

            lesson_ids = (await session.scalars(self._lessons_of_course(data.course_id))).all()
            self._fan_out(session, enrollment_ids=[row.id], lesson_ids=lesson_ids)

            return Enrollment.model_validate(row)

    async def get_enrollment(self, enrollment_id: str) -> Enrollment:
        async with self._reader() as session:
            row = await session.get(EnrollmentModel, enrollment_id)
            if not row:
                raise NotFoundError(f"enrollment does not exist: {enrollment_id}")
            return Enrollment.model_validate(row)

    async def is_enrolled(self, course_id: str, user_id: str) -> bool:
        async with self._reader() as session:
            found = await session.scalar(
                select(EnrollmentModel.id).where(
                    EnrollmentModel.course_id == course_id,
                    EnrollmentModel.user_id == user_id,
                )
            )
            return found is not None

    async def mark_progress(self, update: ProgressUpdate, actor_user_id: str) -> Progress:
        """
        Set the status of one lesson for one enrollment.

        Any status may follow any other. ``completed_at`` is stamped when the
        new status is completed and cleared otherwise.

        Raises:
            NotFoundError: Enrollment or lesson does not exist
            AccessDeniedError: Actor does not own the enrollment
            InvalidRelationError: Lesson lies outside the enrolled course
        """
        async with self._unit_of_work() as session:
            enrollment = await session.get(EnrollmentModel, update.enrollment_id)
            if not enrollment:
                raise NotFoundError(f"enrollment does not exist: {update.enrollment_id}")
            if enrollment.user_id != actor_user_id:
                raise AccessDeniedError("students can only update their own progress")

            lesson = await session.get(LessonModel, update.lesson_id)
            if not lesson:
                raise NotFoundError(f"lesson does not exist: {update.lesson_id}")

            module = await session.get(ModuleModel, lesson.module_id)
            if not module or module.course_id != enrollment.course_id:
                raise InvalidRelationError("lesson is outside enrolled course")

            row = await session.get(ProgressModel, progress_id(enrollment.id, lesson.id))
            if not row:
                raise InvalidRelationError("missing progress row for enrollment/lesson")

            now = self._clock()
            row.status = update.status.value
            row.completed_at = now if update.status == ProgressStatus.COMPLETED else None
            row.updated_at = now

            return Progress.model_validate(row)

    async def completion_percent(self, enrollment_id: str) -> int:
        async with self._reader() as session:
            if not await session.get(EnrollmentModel, enrollment_id):
                raise NotFoundError(f"enrollment does not exist: {enrollment_id}")

            counts = await self._progress_counts(
                session, ProgressModel.enrollment_id == enrollment_id
            )
            completed, total = counts.get(enrollment_id, (0, 0))
            return completion_percent(completed, total)

    # ------------------------------------------------------------------
    # Lesson content
    # ------------------------------------------------------------------

    async def attach_lesson_content(
        self, lesson_id: str, data: LessonContentAttach
    ) -> LessonContent:
        """Create or overwrite the content metadata of a lesson."""
        async with self._unit_of_work() as session:
            if not await session.get(LessonModel, lesson_id):
                raise NotFoundError(f"lesson does not exist: {lesson_id}")

            row = await session.get(LessonContentModel, lesson_id)
            if row is None:
                row = LessonContentModel(lesson_id=lesson_id)
                session.add(row)

            row.provider = data.provider.value
            row.key = data.key
            row.file_id = data.file_id
            row.content_type = data.content_type
            row.size = data.size
            row.updated_at = self._clock()

            return LessonContent.model_validate(row)

    async def get_lesson_content(self, lesson_id: str) -> LessonContent:
        async with self._reader() as session:
            row = await session.get(LessonContentModel, lesson_id)
            if not row:
                raise NotFoundError(f"lesson content does not exist: {lesson_id}")
            return LessonContent.model_validate(row)

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    async def instructor_dashboard(self, course_id: str) -> InstructorDashboard:
        """Course summary, per-student completion and storage usage by provider."""
        async with self._reader() as session:
            course = await session.get(CourseModel, course_id)
            if not course:
                raise NotFoundError(f"course does not exist: {course_id}")

            module_count = await session.scalar(
                select(func.count()).select_from(ModuleModel).where(ModuleModel.course_id == course_id)
            )
            lesson_count = await session.scalar(
                select(func.count()).select_from(self._lessons_of_course(course_id).subquery())
            )

            enrollments = (
                await session.execute(
                    select(EnrollmentModel.id, EnrollmentModel.user_id)
                    .where(EnrollmentModel.course_id == course_id)
                    .order_by(EnrollmentModel.enrolled_at, EnrollmentModel.id)
                )
            ).all()
            counts = await self._progress_counts(
                session,
                ProgressModel.enrollment_id.in_(
                    select(EnrollmentModel.id).where(EnrollmentModel.course_id == course_id)
                ),
            )

            student_progress = []
            for enrollment_id, user_id in enrollments:
                completed, total = counts.get(enrollment_id, (0, 0))
                student_progress.append(
                    StudentProgress(
                        enrollment_id=enrollment_id,
                        user_id=user_id,
                        completed_lessons=completed,
                        total_lessons=total,
                        completion_percent=completion_percent(completed, total),
                    )
                )

            avg_completion = 0
            if student_progress:
                avg_completion = round_half_up(
                    sum(p.completion_percent for p in student_progress) / len(student_progress)
                )

            storage = await session.execute(
                select(
                    LessonContentModel.provider,
                    func.count(),
                    func.coalesce(func.sum(LessonContentModel.size), 0),
                )
                .join(LessonModel, LessonModel.id == LessonContentModel.lesson_id)
                .join(ModuleModel, ModuleModel.id == LessonModel.module_id)
                .where(ModuleModel.course_id == course_id)
                .group_by(LessonContentModel.provider)
            )
            by_provider = {provider: ProviderUsage() for provider in StorageProvider}
            for provider, files, size in storage.all():
                by_provider[StorageProvider(provider)] = ProviderUsage(files=files, bytes=int(size))

            return InstructorDashboard(
                course=CourseSummary(
                    id=course.id,
                    title=course.title,
                    modules=module_count or 0,
                    lessons=lesson_count or 0,
                    enrollments=len(enrollments),
                    avg_completion_percent=avg_completion,
                ),
                student_progress=student_progress,
                storage_usage=StorageUsage(
                    files=sum(u.files for u in by_provider.values()),
                    total_bytes=sum(u.bytes for u in by_provider.values()),
                    by_provider=by_provider,
                ),
            )

    async def usage_snapshot(self, user_id: str) -> UsageSnapshot:
        """
        Live usage counters for a user.

        ``owned_storage_bytes`` sums the attached content sizes across every
        lesson under every course the user created. Never cached.
        """
        async with self._reader() as session:
            created_courses = await session.scalar(
                select(func.count()).select_from(CourseModel).where(CourseModel.created_by == user_id)
            )
            active_enrollments = await session.scalar(
                select(func.count())
                .select_from(EnrollmentModel)
                .where(EnrollmentModel.user_id == user_id)
            )
            owned_storage_bytes = await session.scalar(
                select(func.coalesce(func.sum(LessonContentModel.size), 0))
                .join(LessonModel, LessonModel.id == LessonContentModel.lesson_id)
                .join(ModuleModel, ModuleModel.id == LessonModel.module_id)
                .join(CourseModel, CourseModel.id == ModuleModel.course_id)
                .where(CourseModel.created_by == user_id)
            )
            return UsageSnapshot(
                created_courses=created_courses or 0,
                active_enrollments=active_enrollments or 0,
                owned_storage_bytes=int(owned_storage_bytes or 0),
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _lessons_of_course(course_id: str):
        return (
            select(LessonModel.id)
            .join(ModuleModel, ModuleModel.id == LessonModel.module_id)
            .where(ModuleModel.course_id == course_id)
            .order_by(ModuleModel.position, LessonModel.position)
        )

    def _fan_out(
        self, session: AsyncSession, enrollment_ids: list[str], lesson_ids: list[str]
    ) -> None:
        now = self._clock()
        for enrollment_id in enrollment_ids:
            for lesson_id in lesson_ids:
                session.add(
                    ProgressModel(
                        id=progress_id(enrollment_id, lesson_id),
                        enrollment_id=enrollment_id,
                        lesson_id=lesson_id,
                        status=ProgressStatus.NOT_STARTED.value,
                        completed_at=None,
                        updated_at=now,
                    )
                )

    @staticmethod
    async def _progress_counts(session: AsyncSession, condition) -> dict[str, tuple[int, int]]:
        """Map enrollment id -> (completed, total) for progress rows matching ``condition``."""
        result = await session.execute(
            select(
                ProgressModel.enrollment_id,
                func.sum(case((ProgressModel.status == ProgressStatus.COMPLETED.value, 1), else_=0)),
                func.count(),
            )
            .where(condition)
            .group_by(ProgressModel.enrollment_id)
        )
        return {
            enrollment_id: (int(completed or 0), int(total))
            for enrollment_id, completed, total in result.all()
        }
