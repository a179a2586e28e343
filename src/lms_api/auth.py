"""
Authentication dependency for FastAPI endpoints.

Resolves the caller from an ``Authorization: Bearer <access token>``
header into a ``Principal``. Every failure is an ``UnauthenticatedError``
with a machine code (``missing_token``, ``invalid_token``,
``invalid_token_type``, ``token_expired``, ``stale_token``).

Usage::

    from lms_api.auth import get_principal

    @router.get("/example")
    async def example(principal: Principal = Depends(get_principal)):
        print(principal.id, principal.role)
"""

from __future__ import annotations

from fastapi import Depends, Request

from lms.errors import UnauthenticatedError
from lms.models import Principal
from lms.services.rbac import Operation, require
from lms_api.dependencies import get_services

_BEARER_PREFIX = "Bearer "


async def get_principal(request: Request) -> Principal:
    """FastAPI dependency: verify the bearer access token."""
    header = request.headers.get("authorization", "")
    token = header[len(_BEARER_PREFIX):] if header.startswith(_BEARER_PREFIX) else ""
    if not token:
        raise UnauthenticatedError("bearer token required", code="missing_token")

    return await get_services().tokens.authenticate(token)


def require_operation(operation: Operation):
    """Dependency factory: authenticated principal whose role may attempt ``operation``."""

    async def _dependency(principal: Principal = Depends(get_principal)) -> Principal:
        require(principal, operation)
        return principal

    return _dependency
