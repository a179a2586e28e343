"""
ID generation utilities for the e-learning core.
"""

import hashlib
import secrets
from uuid import uuid4


def generate_entity_id(prefix: str) -> str:
    """
    Generate a unique ID for any entity.

    Args:
        prefix: Entity type prefix (e.g., "usr", "rs")

    Returns:
        ID like "usr-a1b2c3d4"

    Examples:
        >>> id = generate_entity_id("usr")
        >>> id.startswith("usr-")
        True
        >>> len(id)
        12
    """
    unique_bytes = uuid4().bytes
    hash_digest = hashlib.sha256(unique_bytes).hexdigest()[:8]
    return f"{prefix}-{hash_digest}"


def generate_session_id() -> str:
    """Refresh session IDs are full UUIDs; they are embedded in signed tokens."""
    return str(uuid4())


def generate_state_token() -> str:
    """Unguessable OAuth anti-CSRF state (256 bits)."""
    return secrets.token_urlsafe(32)


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


# Common entity prefixes
PREFIX_USER = "usr"
