"""
RBAC Gate.

Authorization is two layers:
    1. ``PERMISSIONS`` maps every operation to the roles allowed to attempt it.
    2. Ownership predicates narrow that per operation, e.g. an Instructor
       may only touch courses they created, a Student only their own
       enrollments.

``require`` applies the first layer; ``authorize`` applies both and
resolves the course by walking Module -> Course or Lesson -> Module ->
Course where needed. Violations raise ``AccessDeniedError``; a referenced
entity that does not exist raises ``NotFoundError``.
"""

from enum import Enum

from lms.errors import AccessDeniedError
from lms.models import Principal, Role
from lms.services.domain_store import DomainStore

ADMIN_ONLY = frozenset({Role.ADMIN})
STAFF = frozenset({Role.ADMIN, Role.INSTRUCTOR})
EVERYONE = frozenset(Role)


class Operation(str, Enum):
    CREATE_COURSE = "create_course"
    CREATE_MODULE = "create_module"
    CREATE_LESSON = "create_lesson"
    CREATE_ENROLLMENT = "create_enrollment"
    MARK_PROGRESS = "mark_progress"
    READ_COMPLETION = "read_completion"
    WRITE_LESSON_CONTENT = "write_lesson_content"
    READ_CONTENT_URL = "read_content_url"
    VERIFY_CONTENT_URL = "verify_content_url"
    READ_DASHBOARD = "read_dashboard"
    CHANGE_PLAN = "change_plan"
    ADMIN_AREA = "admin_area"
    INSTRUCTOR_AREA = "instructor_area"
    STUDENT_AREA = "student_area"


PERMISSIONS: dict[Operation, frozenset[Role]] = {
    Operation.CREATE_COURSE: STAFF,
    Operation.CREATE_MODULE: STAFF,
    Operation.CREATE_LESSON: STAFF,
    Operation.CREATE_ENROLLMENT: EVERYONE,
    Operation.MARK_PROGRESS: frozenset({Role.STUDENT}),
    Operation.READ_COMPLETION: EVERYONE,
    Operation.WRITE_LESSON_CONTENT: STAFF,
    Operation.READ_CONTENT_URL: EVERYONE,
    Operation.VERIFY_CONTENT_URL: EVERYONE,
    Operation.READ_DASHBOARD: STAFF,
    Operation.CHANGE_PLAN: ADMIN_ONLY,
    Operation.ADMIN_AREA: ADMIN_ONLY,
    Operation.INSTRUCTOR_AREA: STAFF,
    Operation.STUDENT_AREA: EVERYONE,
}


def require(principal: Principal, operation: Operation) -> None:
    """Role check only. Raises AccessDeniedError if the role may not attempt ``operation``."""
    if principal.role not in PERMISSIONS[operation]:
        raise AccessDeniedError(f"{principal.role.value} may not {operation.value}")


class RbacGate:
    """
    Role table plus ownership predicates over the Domain Store.

    Usage:
        gate = RbacGate(store)
        await gate.authorize(principal, Operation.CREATE_MODULE, course_id="c1")
    """

    def __init__(self, store: DomainStore):
        self._store = store

    async def authorize(
        self,
        principal: Principal,
        operation: Operation,
        *,
        course_id: str | None = None,
        module_id: str | None = None,
        lesson_id: str | None = None,
        enrollment_id: str | None = None,
        user_id: str | None = None,
    ) -> None:
        require(principal, operation)

        if operation in (Operation.CREATE_MODULE, Operation.READ_DASHBOARD):
            await self._require_course_owner(principal, course_id)

        elif operation is Operation.CREATE_LESSON:
            if principal.role is Role.INSTRUCTOR:
                await self._require_course_owner(
                    principal, await self._store.course_id_for_module(module_id)
                )

        elif operation is Operation.WRITE_LESSON_CONTENT:
            if principal.role is Role.INSTRUCTOR:
                await self._require_course_owner(
                    principal, await self._store.course_id_for_lesson(lesson_id)
                )

        elif operation is Operation.CREATE_ENROLLMENT:
            if principal.role is Role.STUDENT and user_id != principal.id:
                raise AccessDeniedError("students may only enroll themselves")

        elif operation is Operation.VERIFY_CONTENT_URL:
            if principal.role is Role.STUDENT and user_id != principal.id:
                raise AccessDeniedError("students may only verify their own content URLs")

        elif operation in (Operation.MARK_PROGRESS, Operation.READ_COMPLETION):
            await self._require_enrollment_access(principal, enrollment_id)

        elif operation is Operation.READ_CONTENT_URL:
            await self._require_lesson_access(principal, lesson_id)

    async def _require_course_owner(self, principal: Principal, course_id: str | None) -> None:
        if principal.role is not Role.INSTRUCTOR:
            return
        course = await self._store.get_course(course_id)
        if course.created_by != principal.id:
            raise AccessDeniedError("instructors may only manage courses they created")

    async def _require_enrollment_access(self, principal: Principal, enrollment_id: str | None) -> None:
        enrollment = await self._store.get_enrollment(enrollment_id)
        if principal.role is Role.STUDENT and enrollment.user_id != principal.id:
            raise AccessDeniedError("enrollment belongs to another student")
        await self._require_course_owner(principal, enrollment.course_id)

    async def _require_lesson_access(self, principal: Principal, lesson_id: str | None) -> None:
        course_id = await self._store.course_id_for_lesson(lesson_id)
        if principal.role is Role.STUDENT:
            if not await self._store.is_enrolled(course_id, principal.id):
                raise AccessDeniedError("not enrolled in the lesson's course")
            return
        await self._require_course_owner(principal, course_id)
