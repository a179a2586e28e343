"""
FastAPI application with proper database lifecycle management.

FastAPI maintains ONE event loop for the server's lifetime. The database
pool and the Redis client are created in the lifespan so that all
connections live in that loop.
"""

from dotenv import load_dotenv

# Load .env file before any other imports that might need env vars
load_dotenv()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lms.services.rbac import Operation
from lms_api.auth import require_operation
from lms_api.auth_routes import router as auth_router
from lms_api.database import close_database, create_tables, get_session_factory, init_database
from lms_api.dependencies import build_services, init_services, reset_services
from lms_api.errors import register_exception_handlers
from lms_api.routes import router as lms_router
from lms_api.settings import Settings, get_settings
from lms_api.subscription_routes import router as subscription_router

logger = logging.getLogger(__name__)


def build_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Application lifespan manager.

        - startup: Initialize database pool, Redis and services IN the event loop
        - shutdown: Close connections cleanly
        """
        await init_database(settings.database_url, echo=settings.log_level == "DEBUG")
        if settings.env == "local":
            await create_tables()

        redis_client = None
        if settings.redis_url:
            redis_client = aioredis.from_url(settings.redis_url, decode_responses=True)
        else:
            logger.info("LMS_REDIS_URL not set, OAuth login endpoints disabled")

        init_services(build_services(settings, get_session_factory(), redis_client=redis_client))
        logger.info("LMS API started (env=%s)", settings.env)

        yield

        reset_services()
        if redis_client is not None:
            await redis_client.aclose()
        await close_database()
        logger.info("Database connections closed")

    return lifespan


def create_app(settings: Settings | None = None, with_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(
        title="E-learning Platform API",
        description="Identity, authorization and course management for the e-learning platform",
        version="0.1.0",
        lifespan=build_lifespan(settings) if with_lifespan else None,
    )

    # CORS middleware for frontend access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(auth_router)
    app.include_router(subscription_router)
    app.include_router(lms_router)

    # Health check at root
    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    # Role-only areas
    @app.get("/rbac/admin", dependencies=[Depends(require_operation(Operation.ADMIN_AREA))])
    async def admin_area():
        return {"ok": True, "area": "admin"}

    @app.get("/rbac/instructor", dependencies=[Depends(require_operation(Operation.INSTRUCTOR_AREA))])
    async def instructor_area():
        return {"ok": True, "area": "instructor"}

    @app.get("/rbac/student", dependencies=[Depends(require_operation(Operation.STUDENT_AREA))])
    async def student_area():
        return {"ok": True, "area": "student"}

    return app
