"""
Core services: Domain Store, tokens, RBAC, signed URLs, subscriptions and OAuth state.
"""

from .content_delivery import (
    ContentUrlSigner,
    SignedUrl,
    build_signed_content_url,
    verify_signed_content_url,
)
from .domain_store import DomainStore, completion_percent, round_half_up
from .identity import GoogleIdentityExchange, IdentityExchange, IdentityProfile
from .oauth_state import AuthorizationStart, OAuthStateTracker
from .rbac import PERMISSIONS, Operation, RbacGate, require
from .subscription_service import SubscriptionTracker
from .token_service import TokenConfig, TokenPair, TokenService
from .user_service import bump_token_version, get_or_create_user, get_user, parse_email_list

__all__ = [
    # Content delivery
    "ContentUrlSigner",
    "SignedUrl",
    "build_signed_content_url",
    "verify_signed_content_url",
    # Domain store
    "DomainStore",
    "completion_percent",
    "round_half_up",
    # Identity
    "GoogleIdentityExchange",
    "IdentityExchange",
    "IdentityProfile",
    # OAuth state
    "AuthorizationStart",
    "OAuthStateTracker",
    # RBAC
    "PERMISSIONS",
    "Operation",
    "RbacGate",
    "require",
    # Subscriptions
    "SubscriptionTracker",
    # Tokens
    "TokenConfig",
    "TokenPair",
    "TokenService",
    # Users
    "bump_token_version",
    "get_or_create_user",
    "get_user",
    "parse_email_list",
]
