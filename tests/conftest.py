"""
Pytest configuration and fixtures for the e-learning platform tests.

Fixtures:
  - clock:            FakeClock, advanced explicitly by tests
  - settings:         Settings for env=local with test secrets and allow-lists
  - async_engine:     SQLAlchemy engine on a per-test SQLite file (aiosqlite),
                      foreign keys enforced
  - session_factory:  async_sessionmaker bound to that engine
  - async_session:    Per-test DB session
  - store / tokens:   DomainStore and TokenService on the test clock
  - fake_redis:       fakeredis async client for OAuth state
  - identity:         FakeIdentity, maps authorization codes to profiles
  - services:         Full service bundle as the app builds it
  - app / client:     FastAPI app with services installed, httpx.AsyncClient
  - make_user:        Factory: email -> persisted User
  - login:            Factory: email -> (User, auth headers)
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import fakeredis
import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from lms.errors import IdentityExchangeError
from lms.models import Base, User
from lms.services.domain_store import DomainStore
from lms.services.identity import IdentityProfile
from lms.services.token_service import TokenService
from lms.services.user_service import get_or_create_user
from lms_api.app import create_app
from lms_api.database import enable_sqlite_foreign_keys
from lms_api.dependencies import Services, build_services, init_services, reset_services
from lms_api.settings import Settings, clear_settings_cache

ACCESS_SECRET = "access-secret-for-tests-0123456789abcdef"
REFRESH_SECRET = "refresh-secret-for-tests-0123456789abcdef"
DELIVERY_SECRET = "delivery-secret-for-tests-0123456789abcdef"

ADMIN_EMAIL = "admin@example.com"
INSTRUCTOR_EMAIL = "teacher@example.com"
OTHER_INSTRUCTOR_EMAIL = "other.teacher@example.com"


class FakeClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeIdentity:
    """Identity exchange double: known codes resolve to a profile, others fail."""

    def __init__(self):
        self.profiles: dict[str, IdentityProfile] = {}
        self.exchanged: list[str] = []

    def register(self, code: str, email: str, display_name: str = "") -> None:
        self.profiles[code] = IdentityProfile(email=email, display_name=display_name or email)

    def authorization_url(self, state: str) -> str:
        return f"https://idp.example/auth?state={state}"

    async def exchange(self, code: str) -> IdentityProfile:
        self.exchanged.append(code)
        if code not in self.profiles:
            raise IdentityExchangeError("unknown authorization code")
        return self.profiles[code]


# ---------------------------------------------------------------------------
# Settings and clock
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    clear_settings_cache()
    return Settings(
        env="local",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'lms.db'}",
        redis_url="",
        jwt_access_secret=ACCESS_SECRET,
        jwt_refresh_secret=REFRESH_SECRET,
        delivery_signing_secret=DELIVERY_SECRET,
        delivery_url_ttl_seconds=120,
        google_admin_emails=f" {ADMIN_EMAIL.upper()} ,",
        google_instructor_emails=f"{INSTRUCTOR_EMAIL},{OTHER_INSTRUCTOR_EMAIL}",
        cors_origins=["*"],
    )


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def async_engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(settings.database_url, echo=False)
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def async_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def store(session_factory, clock) -> DomainStore:
    return DomainStore(session_factory, clock=clock)


@pytest_asyncio.fixture
async def tokens(session_factory, settings, clock) -> TokenService:
    return TokenService(session_factory, settings.token_config(), clock=clock)


# ---------------------------------------------------------------------------
# Redis and identity
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_redis() -> fakeredis.FakeAsyncRedis:
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def identity() -> FakeIdentity:
    return FakeIdentity()


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def services(settings, session_factory, fake_redis, identity, clock) -> Services:
    return build_services(
        settings,
        session_factory,
        redis_client=fake_redis,
        identity=identity,
        clock=clock,
    )


@pytest_asyncio.fixture
async def app(settings, services):
    application = create_app(settings, with_lifespan=False)
    init_services(services)
    yield application
    reset_services()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def make_user(session_factory, settings, clock):
    async def _make(email: str, name: str = "") -> User:
        async with session_factory() as session:
            return await get_or_create_user(
                session,
                email=email,
                name=name or email.split("@")[0],
                admin_emails=settings.admin_emails,
                instructor_emails=settings.instructor_emails,
                clock=clock,
            )

    return _make


@pytest_asyncio.fixture
async def login(make_user, tokens):
    async def _login(email: str) -> tuple[User, dict[str, str]]:
        user = await make_user(email)
        pair = await tokens.issue_pair(user)
        return user, {"Authorization": f"Bearer {pair.access_token}"}

    return _login
