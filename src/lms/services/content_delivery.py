"""
Capability URL Signer.

A signed content URL grants one user time-limited access to one lesson's
content without re-authentication. The signature is HMAC-SHA256 over the
canonical payload ``provider:key:lessonId:userId:exp``; the storage
backend never participates.
"""

import hashlib
import hmac
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import quote

from lms.models import LessonContent
from lms.utils.clock import Clock, epoch_seconds, utcnow

MAX_URL_TTL_SECONDS = 300

# Characters encodeURIComponent leaves alone
_URI_COMPONENT_SAFE = "-_.!~*'()"


@dataclass(frozen=True)
class SignedUrl:
    url: str
    expires_at: datetime


def _encode(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def _payload(provider: str, key: str, lesson_id: str, user_id: str, exp: str) -> str:
    return f"{provider}:{key}:{lesson_id}:{user_id}:{exp}"


def _sign(secret: str, payload: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def build_signed_content_url(
    base_url: str,
    secret: str,
    now: datetime,
    user_id: str,
    lesson_id: str,
    content: LessonContent,
    ttl_seconds: int,
) -> SignedUrl:
    expires_at = epoch_seconds(now) + ttl_seconds
    exp = str(expires_at)
    provider = content.provider.value
    sig = _sign(secret, _payload(provider, content.key, lesson_id, user_id, exp))

    url = (
        f"{base_url.rstrip('/')}/{provider}/{_encode(content.key)}"
        f"?fileId={_encode(content.file_id)}"
        f"&lessonId={_encode(lesson_id)}"
        f"&uid={_encode(user_id)}"
        f"&exp={exp}"
        f"&sig={sig}"
    )
    return SignedUrl(url=url, expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc))


def verify_signed_content_url(secret: str, now: datetime, params: Mapping[str, str]) -> bool:
    """
    Check a signed URL's parameters.

    ``params`` carries provider, key, lessonId, userId, exp and sig. Returns
    False for a non-numeric or elapsed ``exp``, any altered field or a
    malformed signature. Never raises.
    """
    exp = str(params.get("exp", ""))
    try:
        expires_at = int(exp)
    except ValueError:
        return False
    if expires_at <= epoch_seconds(now):
        return False

    expected = _sign(
        secret,
        _payload(
            str(params.get("provider", "")),
            str(params.get("key", "")),
            str(params.get("lessonId", "")),
            str(params.get("userId", "")),
            exp,
        ),
    )
    presented = str(params.get("sig", ""))
    return hmac.compare_digest(expected.encode("utf-8"), presented.encode("utf-8"))


class ContentUrlSigner:
    """Binds the signing secret, base URL, TTL and clock for the HTTP layer."""

    def __init__(
        self,
        base_url: str,
        secret: str,
        ttl_seconds: int = 120,
        clock: Clock = utcnow,
    ):
        if not 0 < ttl_seconds <= MAX_URL_TTL_SECONDS:
            raise ValueError(f"ttl_seconds must be within 1..{MAX_URL_TTL_SECONDS}")
        self.base_url = base_url
        self.ttl_seconds = ttl_seconds
        self._secret = secret
        self._clock = clock

    def sign(self, user_id: str, lesson_id: str, content: LessonContent) -> SignedUrl:
        return build_signed_content_url(
            self.base_url,
            self._secret,
            self._clock(),
            user_id=user_id,
            lesson_id=lesson_id,
            content=content,
            ttl_seconds=self.ttl_seconds,
        )

    def verify(self, params: Mapping[str, str]) -> bool:
        return verify_signed_content_url(self._secret, self._clock(), params)
