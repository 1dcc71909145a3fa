"""
SchoolOps — application entry point.

Builds the FastAPI app: CORS, the slowapi limiter, envelope error handlers
and the v1 router. On startup the tables are created and the first
institution with its SUPER_ADMIN is seeded.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select

from schoolops.api.v1.api import api_router
from schoolops.core.config import settings
from schoolops.core.exceptions import register_exception_handlers
from schoolops.core.logging import configure_logging
from schoolops.core.rate_limit import limiter
from schoolops.core.rbac import Role
from schoolops.core.security import get_password_hash
from schoolops.db.base import Base
from schoolops.db.session import async_session_factory, engine

# Ensure all models are imported so metadata.create_all can see them
from schoolops.models.announcement import Announcement  # noqa: F401
from schoolops.models.institution import Institution, InstitutionSettings
from schoolops.models.user import User

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


async def seed_first_tenant() -> None:
    """Create the first institution and its SUPER_ADMIN on an empty database."""
    async with async_session_factory() as session:
        result = await session.execute(
            select(Institution).where(Institution.slug == settings.FIRST_INSTITUTION_SLUG)
        )
        institution = result.scalar_one_or_none()
        if institution is None:
            institution = Institution(
                name=settings.FIRST_INSTITUTION_NAME,
                slug=settings.FIRST_INSTITUTION_SLUG,
            )
            institution.settings = InstitutionSettings()
            session.add(institution)
            await session.flush()
            logger.info("Default institution created: %s", institution.slug)

        result = await session.execute(
            select(User).where(User.email == settings.FIRST_ADMIN_EMAIL)
        )
        if result.scalar_one_or_none() is None:
            session.add(
                User(
                    institution_id=institution.id,
                    email=settings.FIRST_ADMIN_EMAIL,
                    hashed_password=get_password_hash(settings.FIRST_ADMIN_PASSWORD),
                    full_name="System Administrator",
                    role=Role.SUPER_ADMIN.value,
                )
            )
            logger.info(
                "Default super admin created: %s (password: <redacted>)",
                settings.FIRST_ADMIN_EMAIL,
            )
        await session.commit()


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")

    await seed_first_tenant()

    logger.info("%s v%s started", settings.PROJECT_NAME, settings.VERSION)
    yield
    await engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="Multi-tenant school operations API",
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # slowapi looks the limiter up on app.state
    application.state.limiter = limiter

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    application.include_router(api_router, prefix=settings.API_V1_PREFIX)

    @application.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
