"""
LMS endpoints.

Courses, modules and lessons; enrollments and progress; lesson content
metadata, signed content URLs and the instructor dashboard. Every handler
authenticates, passes the RBAC gate, then calls the Domain Store.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import Field

from lms.models import (
    ApiModel,
    Completion,
    CourseCreate,
    EnrollmentCreate,
    LessonContentAttach,
    LessonCreate,
    ModuleCreate,
    Principal,
    ProgressUpdate,
    StorageProvider,
)
from lms.services.rbac import Operation
from lms_api.auth import get_principal
from lms_api.dependencies import get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/lms", tags=["lms"])


# =============================================================================
# Request/Response Models
# =============================================================================


class ContentUrlResponse(ApiModel):
    """Signed delivery URL for a lesson's content."""

    provider: StorageProvider
    key: str
    content_type: str
    size: int
    url: str
    expires_at: str
    expires_in_seconds: int


class ContentUrlVerifyRequest(ApiModel):
    """Parameters of a signed content URL to check."""

    provider: StorageProvider
    key: str = Field(..., min_length=1)
    lesson_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    exp: str = Field(..., min_length=1)
    sig: str = Field(..., min_length=1)


def _dump(model: ApiModel) -> dict:
    return model.model_dump(mode="json", by_alias=True)


def _created(body: dict) -> JSONResponse:
    return JSONResponse(status_code=201, content=body)


# =============================================================================
# Course structure
# =============================================================================


@router.post("/courses", status_code=201)
async def create_course(data: CourseCreate, principal: Principal = Depends(get_principal)):
    services = get_services()
    await services.rbac.authorize(principal, Operation.CREATE_COURSE)

    course = await services.store.create_course(data, created_by=principal.id)
    logger.info("Course %s created by %s", course.id, principal.id)
    return _created(await services.subscriptions.annotate(_dump(course), principal.id))


@router.post("/modules", status_code=201)
async def create_module(data: ModuleCreate, principal: Principal = Depends(get_principal)):
    services = get_services()
    await services.rbac.authorize(principal, Operation.CREATE_MODULE, course_id=data.course_id)

    module = await services.store.create_module(data)
    return _created(_dump(module))


@router.post("/lessons", status_code=201)
async def create_lesson(data: LessonCreate, principal: Principal = Depends(get_principal)):
    services = get_services()
    await services.rbac.authorize(principal, Operation.CREATE_LESSON, module_id=data.module_id)

    lesson = await services.store.create_lesson(data)
    return _created(_dump(lesson))


# =============================================================================
# Enrollments and progress
# =============================================================================


@router.post("/enrollments", status_code=201)
async def create_enrollment(data: EnrollmentCreate, principal: Principal = Depends(get_principal)):
    services = get_services()
    await services.rbac.authorize(principal, Operation.CREATE_ENROLLMENT, user_id=data.user_id)

    enrollment = await services.store.enroll(data)
    return _created(await services.subscriptions.annotate(_dump(enrollment), data.user_id))


@router.patch("/progress")
async def mark_progress(data: ProgressUpdate, principal: Principal = Depends(get_principal)):
    services = get_services()
    await services.rbac.authorize(principal, Operation.MARK_PROGRESS, enrollment_id=data.enrollment_id)

    progress = await services.store.mark_progress(data, actor_user_id=principal.id)
    return _dump(progress)


@router.get("/enrollments/{enrollment_id}/completion")
async def get_completion(enrollment_id: str, principal: Principal = Depends(get_principal)):
    services = get_services()
    await services.rbac.authorize(principal, Operation.READ_COMPLETION, enrollment_id=enrollment_id)

    completion = await services.store.completion_percent(enrollment_id)
    return _dump(Completion(enrollment_id=enrollment_id, completion=completion))


# =============================================================================
# Lesson content
# =============================================================================


@router.put("/lessons/{lesson_id}/content", status_code=201)
async def attach_lesson_content(
    lesson_id: str,
    data: LessonContentAttach,
    principal: Principal = Depends(get_principal),
):
    services = get_services()
    await services.rbac.authorize(principal, Operation.WRITE_LESSON_CONTENT, lesson_id=lesson_id)

    content = await services.store.attach_lesson_content(lesson_id, data)
    return _created(await services.subscriptions.annotate(_dump(content), principal.id))


@router.get("/lessons/{lesson_id}/content-url")
async def get_content_url(lesson_id: str, principal: Principal = Depends(get_principal)):
    services = get_services()
    await services.rbac.authorize(principal, Operation.READ_CONTENT_URL, lesson_id=lesson_id)

    content = await services.store.get_lesson_content(lesson_id)
    signed = services.signer.sign(user_id=principal.id, lesson_id=lesson_id, content=content)
    return _dump(
        ContentUrlResponse(
            provider=content.provider,
            key=content.key,
            content_type=content.content_type,
            size=content.size,
            url=signed.url,
            expires_at=signed.expires_at.isoformat().replace("+00:00", "Z"),
            expires_in_seconds=services.signer.ttl_seconds,
        )
    )


@router.post("/content-url/verify")
async def verify_content_url(
    data: ContentUrlVerifyRequest, principal: Principal = Depends(get_principal)
):
    services = get_services()
    await services.rbac.authorize(principal, Operation.VERIFY_CONTENT_URL, user_id=data.user_id)

    params = data.model_dump(mode="json", by_alias=True)
    return {"valid": services.signer.verify(params)}


# =============================================================================
# Dashboard
# =============================================================================


@router.get("/instructor/dashboard/{course_id}")
async def instructor_dashboard(course_id: str, principal: Principal = Depends(get_principal)):
    services = get_services()
    await services.rbac.authorize(principal, Operation.READ_DASHBOARD, course_id=course_id)

    return _dump(await services.store.instructor_dashboard(course_id))
