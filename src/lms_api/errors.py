"""
Exception handlers translating core errors into HTTP responses.

Every error body is ``{"error": <code>, "message": <text>}``.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from lms.errors import ErrorKind, LmsError, ProviderError

logger = logging.getLogger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.ACCESS_DENIED: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.DUPLICATE: 409,
    ErrorKind.INVALID_RELATION: 400,
    ErrorKind.PROVIDER_ERROR: 502,
}


def status_for(error: LmsError) -> int:
    if isinstance(error, ProviderError):
        return error.http_status
    return STATUS_BY_KIND[error.kind]


async def lms_error_handler(request: Request, exc: LmsError) -> JSONResponse:
    status = status_for(exc)
    headers = {"WWW-Authenticate": "Bearer"} if status == 401 else None
    if status >= 500:
        logger.warning("%s %s failed upstream: %s", request.method, request.url.path, exc.code)
    return JSONResponse(
        status_code=status,
        content={"error": exc.code, "message": exc.message},
        headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({".".join(str(part) for part in err["loc"][1:]) for err in exc.errors()})
    return JSONResponse(
        status_code=400,
        content={"error": "invalid_input", "message": f"invalid fields: {', '.join(fields)}"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LmsError, lms_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
