"""
OAuth State Tracker.

Issues single-use anti-CSRF state tokens and stores their issue time in
Redis. The Redis key lives for the validity window plus an hour of grace,
so a state redeemed up to an hour late is reported as expired. Past that
the key is gone and the state reads as unknown.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from lms.errors import ExpiredStateError, InvalidStateError
from lms.services.identity import OAUTH_SCOPE, IdentityExchange
from lms.utils.clock import Clock, utcnow
from lms.utils.ids import generate_state_token

logger = logging.getLogger(__name__)

STATE_WINDOW = timedelta(minutes=10)


@dataclass(frozen=True)
class AuthorizationStart:
    state: str
    auth_url: str
    scope: str = OAUTH_SCOPE


class OAuthStateTracker:
    """Redis-backed state store with a fixed validity window."""

    _PREFIX = "oauth_state:"
    _GRACE_SECONDS = 60 * 60

    def __init__(
        self,
        redis_client,
        identity: IdentityExchange,
        clock: Clock = utcnow,
        window: timedelta = STATE_WINDOW,
    ):
        self._redis = redis_client
        self._identity = identity
        self._clock = clock
        self._window = window

    def _prepare_key(self, state: str) -> str:
        return f"{self._PREFIX}{state}"

    async def start(self) -> AuthorizationStart:
        state = generate_state_token()
        issued_at = self._clock()
        await self._redis.set(
            self._prepare_key(state),
            json.dumps({"issued_at": issued_at.isoformat()}),
            ex=int(self._window.total_seconds()) + self._GRACE_SECONDS,
        )
        return AuthorizationStart(state=state, auth_url=self._identity.authorization_url(state))

    async def consume(self, state: str) -> datetime:
        """
        Remove a state atomically and check its age.

        The state is gone after this call whatever the outcome.

        Returns:
            The time the state was issued

        Raises:
            InvalidStateError: Unknown or already consumed state, which
                includes states older than window plus grace
            ExpiredStateError: State older than the window
        """
        value = await self._redis.getdel(self._prepare_key(state))
        if value is None:
            raise InvalidStateError("unknown or already used state")

        issued_at = datetime.fromisoformat(json.loads(value)["issued_at"])
        if self._clock() - issued_at > self._window:
            logger.info("Rejected expired OAuth state issued at %s", issued_at.isoformat())
            raise ExpiredStateError("state expired")

        return issued_at
