"""
Authentication endpoints.

GET  /auth/google/start     - Issue OAuth state, return provider URL
GET  /auth/google/callback  - Consume state, exchange code, issue tokens
POST /auth/refresh          - Rotate a refresh session
POST /auth/logout           - Revoke a refresh session
GET  /auth/me               - Current user and plan
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import Field

from lms.errors import InvalidInputError, NotFoundError
from lms.models import ApiModel, Plan, Principal, User, UserSummary
from lms.services.token_service import TokenPair
from lms.services.user_service import get_or_create_user, get_user
from lms_api.auth import get_principal
from lms_api.dependencies import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# =============================================================================
# Request/Response Models
# =============================================================================


class RefreshRequest(ApiModel):
    refresh_token: str = Field(..., min_length=1)


class PlanSummary(ApiModel):
    plan: Plan


class TokenResponse(ApiModel):
    """Credentials issued at login and on every refresh."""

    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"
    user: UserSummary
    subscription: PlanSummary


class MeResponse(UserSummary):
    subscription: PlanSummary


async def _token_response(services: Services, user: User, pair: TokenPair) -> dict:
    subscription = await services.subscriptions.get_or_create(user.id)
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
        token_type=pair.token_type,
        user=UserSummary.model_validate(user, from_attributes=True),
        subscription=PlanSummary(plan=subscription.plan),
    ).model_dump(mode="json", by_alias=True)


def _oauth_unavailable() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"error": "oauth_unavailable", "message": "OAuth login is not configured"},
    )


# =============================================================================
# Google OAuth
# =============================================================================


@router.get("/google/start")
async def google_start():
    services = get_services()
    if services.oauth_states is None:
        return _oauth_unavailable()

    start = await services.oauth_states.start()
    return {"authUrl": start.auth_url, "scope": start.scope, "state": start.state}


@router.get("/google/callback")
async def google_callback(code: str | None = None, state: str | None = None):
    """
    Finish the OAuth login.

    The state is consumed before the code exchange, so it is gone even
    when the exchange fails.
    """
    services = get_services()
    if services.oauth_states is None:
        return _oauth_unavailable()
    if not code or not state:
        raise InvalidInputError("code and state are required", code="invalid_callback_params")

    await services.oauth_states.consume(state)
    profile = await services.identity.exchange(code)

    settings = services.settings
    async with services.session_factory() as session:
        user = await get_or_create_user(
            session,
            email=profile.email,
            name=profile.display_name,
            admin_emails=settings.admin_emails,
            instructor_emails=settings.instructor_emails,
            clock=services.clock,
        )

    logger.info("User %s logged in as %s", user.id, user.role.value)
    return await _token_response(services, user, await services.tokens.issue_pair(user))


# =============================================================================
# Refresh sessions
# =============================================================================


@router.post("/refresh")
async def refresh(data: RefreshRequest):
    services = get_services()
    user, pair = await services.tokens.rotate(data.refresh_token)
    return await _token_response(services, user, pair)


@router.post("/logout")
async def logout(data: RefreshRequest):
    await get_services().tokens.revoke(data.refresh_token)
    return {"ok": True}


@router.get("/me")
async def me(principal: Principal = Depends(get_principal)):
    services = get_services()
    async with services.session_factory() as session:
        user = await get_user(session, principal.id)
    if user is None:
        raise NotFoundError(f"user does not exist: {principal.id}")

    subscription = await services.subscriptions.get_or_create(user.id)
    return MeResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        subscription=PlanSummary(plan=subscription.plan),
    ).model_dump(mode="json", by_alias=True)
