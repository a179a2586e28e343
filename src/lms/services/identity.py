"""
Identity Exchange Adapter.

Turns an OAuth authorization code into an ``IdentityProfile``. Failures
surface immediately as ``IdentityExchangeError``; nothing here retries.
"""

import logging
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlencode

import httpx

from lms.errors import IdentityExchangeError

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
OAUTH_SCOPE = "openid email"


@dataclass(frozen=True)
class IdentityProfile:
    email: str
    display_name: str


class IdentityExchange(Protocol):
    def authorization_url(self, state: str) -> str: ...

    async def exchange(self, code: str) -> IdentityProfile: ...


class GoogleIdentityExchange:
    """
    Google OpenID Connect code exchange.

    Usage:
        identity = GoogleIdentityExchange(client_id, client_secret, redirect_uri)
        url = identity.authorization_url(state)
        profile = await identity.exchange(code)
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._http_client = http_client
        self._timeout = timeout

    def authorization_url(self, state: str) -> str:
        query = urlencode(
            {
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "response_type": "code",
                "scope": OAUTH_SCOPE,
                "state": state,
                "access_type": "offline",
                "prompt": "consent",
            }
        )
        return f"{GOOGLE_AUTH_URL}?{query}"

    async def exchange(self, code: str) -> IdentityProfile:
        """
        Exchange an authorization code for the user's email and name.

        Raises:
            IdentityExchangeError: On any HTTP failure or incomplete profile
        """
        if self._http_client is not None:
            return await self._exchange(self._http_client, code)

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await self._exchange(client, code)

    async def _exchange(self, client: httpx.AsyncClient, code: str) -> IdentityProfile:
        try:
            token_response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                },
            )
            token_response.raise_for_status()
            access_token = token_response.json().get("access_token")
            if not access_token:
                raise IdentityExchangeError("token endpoint returned no access token")

            profile_response = await client.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            profile_response.raise_for_status()
            profile = profile_response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Google code exchange failed: %s", type(exc).__name__)
            raise IdentityExchangeError("identity provider request failed") from exc

        email = profile.get("email")
        if not email:
            logger.warning("Google profile has no email")
            raise IdentityExchangeError("identity provider returned no email")

        return IdentityProfile(email=email, display_name=profile.get("name") or email)
