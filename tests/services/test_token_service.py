"""
Tests for access tokens, refresh-session rotation, replay detection and logout.
"""

import asyncio

import jwt
import pytest
from sqlalchemy import select

from lms.errors import (
    SessionInvalidError,
    SessionMismatchError,
    StaleTokenError,
    TokenExpiredError,
    UnauthenticatedError,
)
from lms.models import RefreshSessionModel, Role
from lms.services.token_service import TokenConfig, TokenService
from lms.services.user_service import bump_token_version
from lms.utils.ids import sha256_hex

INSTRUCTOR_EMAIL = "teacher@example.com"


@pytest.mark.asyncio
async def test_access_token_claims(tokens, make_user, settings):
    user = await make_user(INSTRUCTOR_EMAIL)
    pair = await tokens.issue_pair(user)

    claims = jwt.decode(
        pair.access_token,
        settings.jwt_access_secret,
        algorithms=["HS256"],
        audience="navcloud",
        issuer="navcloud-auth",
        options={"verify_exp": False},
    )
    assert claims["sub"] == user.id
    assert claims["email"] == INSTRUCTOR_EMAIL
    assert claims["role"] == "Instructor"
    assert claims["tokenVersion"] == 1
    assert claims["type"] == "access"
    assert pair.expires_in == 900
    assert pair.token_type == "Bearer"


@pytest.mark.asyncio
async def test_authenticate_returns_principal(tokens, make_user):
    user = await make_user(INSTRUCTOR_EMAIL)
    pair = await tokens.issue_pair(user)

    principal = await tokens.authenticate(pair.access_token)

    assert principal.id == user.id
    assert principal.role is Role.INSTRUCTOR
    assert principal.token_version == 1


@pytest.mark.asyncio
async def test_access_token_expires_after_ttl_and_refresh_still_works(tokens, make_user, clock):
    """Test that TTL seconds after issue the access token is expired but refresh succeeds."""
    user = await make_user("student@example.com")
    pair = await tokens.issue_pair(user)

    clock.advance(900)

    with pytest.raises(TokenExpiredError) as exc:
        await tokens.authenticate(pair.access_token)
    assert exc.value.code == "token_expired"

    _, new_pair = await tokens.rotate(pair.refresh_token)
    principal = await tokens.authenticate(new_pair.access_token)
    assert principal.id == user.id


@pytest.mark.asyncio
async def test_refresh_token_is_not_an_access_token(tokens, make_user):
    user = await make_user("student@example.com")
    pair = await tokens.issue_pair(user)

    with pytest.raises(UnauthenticatedError) as exc:
        await tokens.authenticate(pair.refresh_token)
    assert exc.value.code == "invalid_token"


@pytest.mark.asyncio
async def test_wrong_type_with_valid_signature(tokens, make_user, clock, settings):
    """Test that a refresh-typed token signed with the access secret is rejected by type."""
    user = await make_user("student@example.com")
    forged = jwt.encode(
        {
            "sub": user.id,
            "type": "refresh",
            "tokenVersion": 1,
            "iss": "navcloud-auth",
            "aud": "navcloud",
            "exp": int(clock.now.timestamp()) + 60,
        },
        settings.jwt_access_secret,
        algorithm="HS256",
    )

    with pytest.raises(UnauthenticatedError) as exc:
        await tokens.authenticate(forged)
    assert exc.value.code == "invalid_token_type"


@pytest.mark.asyncio
async def test_wrong_audience_rejected(tokens, make_user, clock, settings):
    user = await make_user("student@example.com")
    forged = jwt.encode(
        {
            "sub": user.id,
            "type": "access",
            "tokenVersion": 1,
            "iss": "navcloud-auth",
            "aud": "someone-else",
            "exp": int(clock.now.timestamp()) + 60,
        },
        settings.jwt_access_secret,
        algorithm="HS256",
    )

    with pytest.raises(UnauthenticatedError) as exc:
        await tokens.authenticate(forged)
    assert exc.value.code == "invalid_token"


@pytest.mark.asyncio
async def test_stale_tokens_after_token_version_bump(tokens, make_user, session_factory, clock):
    """Test that a logout-all invalidates both access and refresh tokens."""
    user = await make_user("student@example.com")
    pair = await tokens.issue_pair(user)

    async with session_factory() as session:
        assert await bump_token_version(session, user.id, clock=clock) == 2

    with pytest.raises(StaleTokenError) as exc:
        await tokens.authenticate(pair.access_token)
    assert exc.value.code == "stale_token"

    with pytest.raises(StaleTokenError) as exc:
        await tokens.rotate(pair.refresh_token)
    assert exc.value.code == "stale_refresh_token"


@pytest.mark.asyncio
async def test_rotation_persists_hashed_session(tokens, make_user, session_factory):
    user = await make_user("student@example.com")
    pair = await tokens.issue_pair(user)

    async with session_factory() as session:
        rows = (await session.scalars(select(RefreshSessionModel))).all()

    assert len(rows) == 1
    assert rows[0].token_hash == sha256_hex(pair.refresh_token)
    assert rows[0].revoked_at is None


@pytest.mark.asyncio
async def test_refresh_token_works_exactly_once(tokens, make_user):
    """Test that replaying a rotated refresh token fails with SessionInvalid."""
    user = await make_user("student@example.com")
    pair = await tokens.issue_pair(user)

    rotated_user, new_pair = await tokens.rotate(pair.refresh_token)
    assert rotated_user.id == user.id
    assert new_pair.refresh_token != pair.refresh_token

    with pytest.raises(SessionInvalidError) as exc:
        await tokens.rotate(pair.refresh_token)
    assert exc.value.code == "refresh_session_invalid"

    # The new token is unaffected by the replay attempt
    await tokens.rotate(new_pair.refresh_token)


@pytest.mark.asyncio
async def test_concurrent_rotation_single_winner(tokens, make_user):
    """Test that two concurrent rotations of one token yield exactly one success."""
    user = await make_user("student@example.com")
    pair = await tokens.issue_pair(user)

    results = await asyncio.gather(
        tokens.rotate(pair.refresh_token),
        tokens.rotate(pair.refresh_token),
        return_exceptions=True,
    )

    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], (SessionInvalidError, SessionMismatchError))


@pytest.mark.asyncio
async def test_hash_mismatch_revokes_session(tokens, make_user, settings):
    """Test that a validly signed token whose hash differs from the stored one is a mismatch."""
    user = await make_user("student@example.com")
    pair = await tokens.issue_pair(user)
    claims = jwt.decode(
        pair.refresh_token,
        settings.jwt_refresh_secret,
        algorithms=["HS256"],
        audience="navcloud",
        options={"verify_exp": False},
    )
    # Same session id, different token bytes
    tampered = jwt.encode({**claims, "extra": "x"}, settings.jwt_refresh_secret, algorithm="HS256")

    with pytest.raises(SessionMismatchError) as exc:
        await tokens.rotate(tampered)
    assert exc.value.code == "refresh_session_mismatch"

    # The session is burned; the genuine token no longer rotates either
    with pytest.raises(SessionInvalidError):
        await tokens.rotate(pair.refresh_token)


@pytest.mark.asyncio
async def test_expired_refresh_token(tokens, make_user, clock):
    user = await make_user("student@example.com")
    pair = await tokens.issue_pair(user)

    clock.advance(60 * 60 * 24 * 7)

    with pytest.raises(TokenExpiredError) as exc:
        await tokens.rotate(pair.refresh_token)
    assert exc.value.code == "refresh_token_expired"


@pytest.mark.asyncio
async def test_garbage_refresh_token(tokens):
    with pytest.raises(UnauthenticatedError) as exc:
        await tokens.rotate("not-a-jwt")
    assert exc.value.code == "invalid_refresh_token"


@pytest.mark.asyncio
async def test_logout_is_idempotent_and_final(tokens, make_user):
    """Test that a revoked refresh token can never be rotated again."""
    user = await make_user("student@example.com")
    pair = await tokens.issue_pair(user)

    await tokens.revoke(pair.refresh_token)
    await tokens.revoke(pair.refresh_token)

    with pytest.raises(SessionInvalidError):
        await tokens.rotate(pair.refresh_token)


@pytest.mark.asyncio
async def test_ttls_come_from_config(session_factory, settings, make_user, clock):
    config = settings.token_config()
    short = TokenService(
        session_factory,
        TokenConfig(
            access_secret=config.access_secret,
            refresh_secret=config.refresh_secret,
            access_ttl_seconds=30,
            refresh_ttl_seconds=60,
        ),
        clock=clock,
    )
    user = await make_user("student@example.com")
    pair = await short.issue_pair(user)

    clock.advance(29)
    await short.authenticate(pair.access_token)

    clock.advance(1)
    with pytest.raises(TokenExpiredError):
        await short.authenticate(pair.access_token)

    clock.advance(30)
    with pytest.raises(TokenExpiredError):
        await short.rotate(pair.refresh_token)
