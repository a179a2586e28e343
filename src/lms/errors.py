"""
Error taxonomy for the e-learning core.

Every failure raised by the Domain Store, the Token & Session Service and
the other core services is an ``LmsError`` tagged with an ``ErrorKind``.
The transport layer (``lms_api.errors``) translates the kind into a
response; nothing below the transport knows about HTTP.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Kinds of failure the core can report."""

    INVALID_INPUT = "invalid_input"
    UNAUTHENTICATED = "unauthenticated"
    ACCESS_DENIED = "access_denied"
    NOT_FOUND = "not_found"
    DUPLICATE = "duplicate"
    INVALID_RELATION = "invalid_relation"
    PROVIDER_ERROR = "provider_error"


class LmsError(Exception):
    """
    Base class for all domain errors.

    Attributes:
        kind: Taxonomy entry used by the transport to pick a status code
        code: Stable machine-readable code returned to clients
    """

    kind: ErrorKind = ErrorKind.INVALID_INPUT
    default_code: str | None = None

    def __init__(self, message: str = "", code: str | None = None):
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value
        self.code = code or self.default_code or self.kind.value


class InvalidInputError(LmsError):
    """Schema or value violation in a request."""

    kind = ErrorKind.INVALID_INPUT


class UnauthenticatedError(LmsError):
    """Missing, invalid, expired or stale credential."""

    kind = ErrorKind.UNAUTHENTICATED
    default_code = "invalid_token"


class AccessDeniedError(LmsError):
    """Role or ownership rule violated."""

    kind = ErrorKind.ACCESS_DENIED
    default_code = "forbidden"


class NotFoundError(LmsError):
    """Referenced entity does not exist."""

    kind = ErrorKind.NOT_FOUND


class DuplicateError(LmsError):
    """Uniqueness constraint violated."""

    kind = ErrorKind.DUPLICATE


class InvalidRelationError(LmsError):
    """Referential or ordering rule violated."""

    kind = ErrorKind.INVALID_RELATION


class ProviderError(LmsError):
    """Upstream identity or storage provider failed."""

    kind = ErrorKind.PROVIDER_ERROR
    http_status: int = 502


# ---------------------------------------------------------------------------
# OAuth state
# ---------------------------------------------------------------------------


class InvalidStateError(InvalidInputError):
    default_code = "invalid_state"


class ExpiredStateError(InvalidInputError):
    default_code = "expired_state"


# ---------------------------------------------------------------------------
# Tokens and refresh sessions
# ---------------------------------------------------------------------------


class TokenExpiredError(UnauthenticatedError):
    default_code = "token_expired"


class StaleTokenError(UnauthenticatedError):
    """Token was issued before the user's token version was bumped."""

    default_code = "stale_token"


class SessionInvalidError(UnauthenticatedError):
    """Refresh session is missing, revoked or expired."""

    default_code = "refresh_session_invalid"


class SessionMismatchError(UnauthenticatedError):
    """Presented refresh token does not match the stored session (replay or tamper)."""

    default_code = "refresh_session_mismatch"


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class IdentityExchangeError(ProviderError):
    """Authorization code could not be exchanged for a profile."""

    default_code = "google_auth_failed"
    http_status = 401
