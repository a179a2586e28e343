"""
Tests for the Google code exchange, driven through httpx.MockTransport.
"""

from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from lms.errors import IdentityExchangeError
from lms.services.identity import (
    GOOGLE_TOKEN_URL,
    GOOGLE_USERINFO_URL,
    GoogleIdentityExchange,
)


def make_exchange(handler) -> GoogleIdentityExchange:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GoogleIdentityExchange(
        "client-id", "client-secret", "http://localhost:8000/auth/google/callback", http_client=client
    )


def google(token_body=None, token_status=200, profile_body=None, profile_status=200):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if str(request.url) == GOOGLE_TOKEN_URL:
            return httpx.Response(token_status, json=token_body or {"access_token": "at-1"})
        if str(request.url) == GOOGLE_USERINFO_URL:
            return httpx.Response(
                profile_status, json=profile_body or {"email": "ada@example.com", "name": "Ada"}
            )
        return httpx.Response(404)

    handler.seen = seen
    return handler


def test_authorization_url_parameters():
    identity = GoogleIdentityExchange("client-id", "secret", "http://localhost/cb")

    url = urlsplit(identity.authorization_url("state-123"))
    query = parse_qs(url.query)

    assert url.netloc == "accounts.google.com"
    assert query["client_id"] == ["client-id"]
    assert query["redirect_uri"] == ["http://localhost/cb"]
    assert query["response_type"] == ["code"]
    assert query["scope"] == ["openid email"]
    assert query["state"] == ["state-123"]


@pytest.mark.asyncio
async def test_exchange_success():
    handler = google()
    identity = make_exchange(handler)

    profile = await identity.exchange("code-1")

    assert profile.email == "ada@example.com"
    assert profile.display_name == "Ada"
    token_request, profile_request = handler.seen
    assert b"grant_type=authorization_code" in token_request.content
    assert b"code=code-1" in token_request.content
    assert profile_request.headers["Authorization"] == "Bearer at-1"


@pytest.mark.asyncio
async def test_display_name_falls_back_to_email():
    identity = make_exchange(google(profile_body={"email": "ada@example.com"}))

    profile = await identity.exchange("code-1")

    assert profile.display_name == "ada@example.com"


@pytest.mark.asyncio
async def test_token_endpoint_error():
    identity = make_exchange(google(token_status=400, token_body={"error": "invalid_grant"}))

    with pytest.raises(IdentityExchangeError) as exc:
        await identity.exchange("bad-code")
    assert exc.value.code == "google_auth_failed"


@pytest.mark.asyncio
async def test_missing_access_token():
    identity = make_exchange(google(token_body={"token_type": "Bearer"}))

    with pytest.raises(IdentityExchangeError):
        await identity.exchange("code-1")


@pytest.mark.asyncio
async def test_profile_without_email():
    identity = make_exchange(google(profile_body={"name": "No Mail"}))

    with pytest.raises(IdentityExchangeError):
        await identity.exchange("code-1")


@pytest.mark.asyncio
async def test_network_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    identity = make_exchange(handler)

    with pytest.raises(IdentityExchangeError):
        await identity.exchange("code-1")
