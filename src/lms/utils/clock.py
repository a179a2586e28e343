"""
Injectable wall clock.

Services take a ``Clock`` so that token expiry, OAuth state windows and
signed-URL lifetimes can be driven deterministically in tests.
"""

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def epoch_seconds(moment: datetime) -> int:
    return int(moment.timestamp())
