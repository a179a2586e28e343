"""
Service wiring for the HTTP layer.

One ``Services`` bundle per process, built in the app lifespan from the
settings, the session factory and (optionally) Redis. Routes fetch it via
``get_services()``.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lms.services.content_delivery import ContentUrlSigner
from lms.services.domain_store import DomainStore
from lms.services.identity import GoogleIdentityExchange, IdentityExchange
from lms.services.oauth_state import OAuthStateTracker
from lms.services.rbac import RbacGate
from lms.services.subscription_service import SubscriptionTracker
from lms.services.token_service import TokenService
from lms.utils.clock import Clock, utcnow
from lms_api.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    store: DomainStore
    tokens: TokenService
    rbac: RbacGate
    signer: ContentUrlSigner
    subscriptions: SubscriptionTracker
    identity: IdentityExchange
    oauth_states: OAuthStateTracker | None
    clock: Clock


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    redis_client=None,
    identity: IdentityExchange | None = None,
    clock: Clock = utcnow,
) -> Services:
    """Assemble every core service. Without a Redis client OAuth login is disabled."""
    store = DomainStore(session_factory, clock=clock)
    identity = identity or GoogleIdentityExchange(
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        redirect_uri=settings.google_redirect_uri,
    )

    oauth_states = None
    if redis_client is not None:
        oauth_states = OAuthStateTracker(redis_client, identity, clock=clock)

    return Services(
        settings=settings,
        session_factory=session_factory,
        store=store,
        tokens=TokenService(session_factory, settings.token_config(), clock=clock),
        rbac=RbacGate(store),
        signer=ContentUrlSigner(
            base_url=settings.delivery_base_url,
            secret=settings.delivery_signing_secret,
            ttl_seconds=settings.delivery_url_ttl_seconds,
            clock=clock,
        ),
        subscriptions=SubscriptionTracker(session_factory, store, clock=clock),
        identity=identity,
        oauth_states=oauth_states,
        clock=clock,
    )


# Singleton services (initialized in app lifespan)
_services: Services | None = None


def init_services(services: Services) -> None:
    """Called during FastAPI startup."""
    global _services
    _services = services
    logger.info("Services initialized (oauth login %s)", "enabled" if services.oauth_states else "disabled")


def reset_services() -> None:
    global _services
    _services = None


def get_services() -> Services:
    """Get the services singleton."""
    if _services is None:
        raise RuntimeError("Services not initialized. This should happen in the FastAPI lifespan.")
    return _services
