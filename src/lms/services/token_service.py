"""
Token & Session Service.

Mints short-lived signed access tokens and longer-lived refresh tokens
bound to a persisted refresh session, rotates refresh sessions on use and
detects replay.

Tokens are HS256 JWTs. Issuer and verifier are the same service, so a
symmetric secret per token type is enough. Expiry is checked against the
injected clock rather than the system clock.

Rotation is read-check-revoke-issue as one atomic unit per session id:
    1. a per-session-id lock serializes rotations inside this process;
    2. a conditional UPDATE revokes the session only if it is still active
       and the stored hash matches the presented token. Its row count
       decides the winner, which also holds across processes.
Two concurrent rotations of the same refresh token therefore yield exactly
one new token pair.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import jwt
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lms.errors import (
    SessionInvalidError,
    SessionMismatchError,
    StaleTokenError,
    TokenExpiredError,
    UnauthenticatedError,
)
from lms.models import Principal, RefreshSessionModel, Role, User, UserModel, as_utc
from lms.utils.clock import Clock, epoch_seconds, utcnow
from lms.utils.ids import generate_session_id, sha256_hex
from lms.utils.locks import KeyedLock

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class TokenConfig:
    """Secrets, claims and lifetimes for issued tokens."""

    access_secret: str
    refresh_secret: str
    issuer: str = "navcloud-auth"
    audience: str = "navcloud"
    access_ttl_seconds: int = 900
    refresh_ttl_seconds: int = 60 * 60 * 24 * 7
    algorithm: str = "HS256"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"


class TokenService:
    """
    Issues, verifies, rotates and revokes credentials.

    Usage:
        tokens = TokenService(session_factory, TokenConfig(access_secret=..., refresh_secret=...))
        pair = await tokens.issue_pair(user)
        principal = await tokens.authenticate(pair.access_token)
        user, pair = await tokens.rotate(pair.refresh_token)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: TokenConfig,
        clock: Clock = utcnow,
        session_id_factory=generate_session_id,
    ):
        self._session_factory = session_factory
        self._config = config
        self._clock = clock
        self._session_id_factory = session_id_factory
        self._session_locks = KeyedLock()

    @property
    def access_ttl_seconds(self) -> int:
        return self._config.access_ttl_seconds

    # ------------------------------------------------------------------
    # Access tokens
    # ------------------------------------------------------------------

    def mint_access(self, user: User) -> str:
        issued_at = epoch_seconds(self._clock())
        claims = {
            "sub": user.id,
            "email": user.email,
            "role": user.role.value,
            "tokenVersion": user.token_version,
            "type": ACCESS,
            "iss": self._config.issuer,
            "aud": self._config.audience,
            "iat": issued_at,
            "exp": issued_at + self._config.access_ttl_seconds,
        }
        return jwt.encode(claims, self._config.access_secret, algorithm=self._config.algorithm)

    async def authenticate(self, token: str) -> Principal:
        """
        Verify an access token and resolve the principal.

        Raises:
            UnauthenticatedError: Bad signature, claims or token type
            TokenExpiredError: Token lifetime elapsed
            StaleTokenError: User vanished or its token version moved on
        """
        claims = self._decode(
            token,
            self._config.access_secret,
            expected_type=ACCESS,
            invalid_code="invalid_token",
            expired_code="token_expired",
        )

        async with self._session_factory() as session:
            user = await session.get(UserModel, claims["sub"])

        if not user or user.token_version != claims.get("tokenVersion"):
            logger.warning("Rejected stale access token for user %s", claims["sub"])
            raise StaleTokenError("token version no longer current")

        return Principal(
            id=user.id,
            email=user.email,
            role=Role(user.role),
            token_version=user.token_version,
        )

    # ------------------------------------------------------------------
    # Refresh sessions
    # ------------------------------------------------------------------

    async def issue_pair(self, user: User) -> TokenPair:
        """Mint an access token and open a new refresh session."""
        async with self._session_factory() as session:
            async with session.begin():
                refresh_token = self._open_refresh_session(session, user)

        return TokenPair(
            access_token=self.mint_access(user),
            refresh_token=refresh_token,
            expires_in=self._config.access_ttl_seconds,
        )

    async def rotate(self, refresh_token: str) -> tuple[User, TokenPair]:
        """
        Exchange a refresh token for a new access + refresh pair.

        The presented session is revoked in the same transaction that opens
        the new one.

        Raises:
            UnauthenticatedError: Bad signature, claims or token type
            TokenExpiredError: Refresh token lifetime elapsed
            SessionInvalidError: Session missing, revoked or expired
            SessionMismatchError: Stored hash or user differs (replay/tamper)
            StaleTokenError: User's token version moved on
        """
        claims = self._decode(
            refresh_token,
            self._config.refresh_secret,
            expected_type=REFRESH,
            invalid_code="invalid_refresh_token",
            expired_code="refresh_token_expired",
        )
        session_id = claims.get("sid")
        if not isinstance(session_id, str) or not session_id:
            raise UnauthenticatedError("refresh token has no session", code="invalid_refresh_token")

        token_hash = sha256_hex(refresh_token)
        rejection: UnauthenticatedError | None = None

        async with self._session_locks.hold(session_id):
            async with self._session_factory() as session:
                async with session.begin():
                    now = self._clock()
                    revoked = await session.execute(
                        update(RefreshSessionModel)
                        .where(
                            RefreshSessionModel.id == session_id,
                            RefreshSessionModel.user_id == claims["sub"],
                            RefreshSessionModel.token_hash == token_hash,
                            RefreshSessionModel.revoked_at.is_(None),
                            RefreshSessionModel.expires_at > now,
                        )
                        .values(revoked_at=now)
                        .execution_options(synchronize_session=False)
                    )

                    if revoked.rowcount == 1:
                        row = await session.get(UserModel, claims["sub"])
                        if not row or row.token_version != claims.get("tokenVersion"):
                            raise StaleTokenError(
                                "token version no longer current", code="stale_refresh_token"
                            )
                        user = User.model_validate(row)
                        new_refresh = self._open_refresh_session(session, user)
                    else:
                        rejection = await self._reject(session, session_id, now)

        if rejection is not None:
            raise rejection

        logger.info("Rotated refresh session %s for user %s", session_id, user.id)
        return user, TokenPair(
            access_token=self.mint_access(user),
            refresh_token=new_refresh,
            expires_in=self._config.access_ttl_seconds,
        )

    async def revoke(self, refresh_token: str) -> None:
        """Revoke the session behind a refresh token (logout). Safe to repeat."""
        claims = self._decode(
            refresh_token,
            self._config.refresh_secret,
            expected_type=REFRESH,
            invalid_code="invalid_refresh_token",
            expired_code="refresh_token_expired",
        )
        session_id = claims.get("sid")
        if not isinstance(session_id, str) or not session_id:
            raise UnauthenticatedError("refresh token has no session", code="invalid_refresh_token")

        async with self._session_locks.hold(session_id):
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(RefreshSessionModel)
                        .where(
                            RefreshSessionModel.id == session_id,
                            RefreshSessionModel.user_id == claims["sub"],
                            RefreshSessionModel.revoked_at.is_(None),
                        )
                        .values(revoked_at=self._clock())
                        .execution_options(synchronize_session=False)
                    )

        if result.rowcount:
            logger.info("Revoked refresh session %s for user %s", session_id, claims["sub"])

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _open_refresh_session(self, session: AsyncSession, user: User) -> str:
        session_id = self._session_id_factory()
        now = self._clock()
        expires_at = epoch_seconds(now) + self._config.refresh_ttl_seconds
        token = jwt.encode(
            {
                "sub": user.id,
                "sid": session_id,
                "tokenVersion": user.token_version,
                "type": REFRESH,
                "iss": self._config.issuer,
                "aud": self._config.audience,
                "iat": epoch_seconds(now),
                "exp": expires_at,
            },
            self._config.refresh_secret,
            algorithm=self._config.algorithm,
        )
        session.add(
            RefreshSessionModel(
                id=session_id,
                user_id=user.id,
                token_hash=sha256_hex(token),
                expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc),
                revoked_at=None,
                created_at=now,
            )
        )
        return token

    async def _reject(
        self, session: AsyncSession, session_id: str, now: datetime
    ) -> UnauthenticatedError:
        """Explain why the compare-and-revoke matched nothing; revoke on mismatch."""
        row = await session.get(RefreshSessionModel, session_id)

        if row is None or row.revoked_at is not None or as_utc(row.expires_at) <= now:
            if row is not None and row.revoked_at is not None:
                logger.warning("Reuse of revoked refresh session %s", session_id)
            return SessionInvalidError("refresh session is no longer valid")

        logger.warning("Refresh token mismatch on session %s; revoking it", session_id)
        row.revoked_at = now
        return SessionMismatchError("refresh token does not match its session")

    def _decode(
        self,
        token: str,
        secret: str,
        expected_type: str,
        invalid_code: str,
        expired_code: str,
    ) -> dict[str, Any]:
        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[self._config.algorithm],
                audience=self._config.audience,
                issuer=self._config.issuer,
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "require": ["exp", "sub", "iss", "aud"],
                },
            )
        except jwt.InvalidTokenError as exc:
            raise UnauthenticatedError("token could not be verified", code=invalid_code) from exc

        if claims.get("type") != expected_type:
            raise UnauthenticatedError("unexpected token type", code="invalid_token_type")

        exp = claims["exp"]
        if not isinstance(exp, int) or exp <= epoch_seconds(self._clock()):
            raise TokenExpiredError("token expired", code=expired_code)

        return claims
