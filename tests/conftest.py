"""
Shared test fixtures for the SchoolOps test suite.

Async throughout (aiosqlite + AsyncSession); every test gets its own
in-memory database.
"""

import os
import sys
import time
from typing import AsyncGenerator, Awaitable, Callable

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["SECRET_KEY"] = "test-secret-key-for-the-schoolops-suite"
os.environ["LOG_LEVEL"] = "WARNING"

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from schoolops.api.v1.deps import get_db
from schoolops.core import totp
from schoolops.core.events import event_bus
from schoolops.core.rate_limit import limiter
from schoolops.core.rbac import Role
from schoolops.core.security import create_access_token, get_password_hash
from schoolops.db.base import Base
from schoolops.main import app
from schoolops.models.institution import Institution
from schoolops.models.user import User

DEFAULT_PASSWORD = "password123"


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh in-memory database with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def async_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app and the test database."""

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def clean_event_bus():
    event_bus.clear()
    yield
    event_bus.clear()


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Every test starts with empty rate-limit buckets."""
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
async def institution(db_session: AsyncSession) -> Institution:
    inst = Institution(name="Springfield High", slug="springfield-high")
    db_session.add(inst)
    await db_session.commit()
    await db_session.refresh(inst)
    return inst


@pytest.fixture
async def other_institution(db_session: AsyncSession) -> Institution:
    inst = Institution(name="Shelbyville Academy", slug="shelbyville")
    db_session.add(inst)
    await db_session.commit()
    await db_session.refresh(inst)
    return inst


@pytest.fixture
def make_user(
    db_session: AsyncSession, institution: Institution
) -> Callable[..., Awaitable[User]]:
    """Factory: ``await make_user(Role.TEACHER)`` → persisted user."""
    counter = {"n": 0}

    async def _make(
        role: Role = Role.STUDENT,
        email: str | None = None,
        password: str = DEFAULT_PASSWORD,
        institution_id: int | None = None,
        is_active: bool = True,
        two_factor_secret: str | None = None,
    ) -> User:
        counter["n"] += 1
        user = User(
            institution_id=institution_id or institution.id,
            email=email or f"{role.value.lower()}{counter['n']}@springfield.test",
            hashed_password=get_password_hash(password),
            full_name=f"{role.value.title()} {counter['n']}",
            role=role.value,
            is_active=is_active,
            two_factor_secret=two_factor_secret,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(user.id, role=user.role, institution_id=user.institution_id)
    return {"Authorization": f"Bearer {token}"}


def wrong_code(secret: str) -> str:
    """A well-formed code that is not valid for ``secret`` around now."""
    now_ms = int(time.time() * 1000)
    valid = {totp.generate_code(secret, now_ms + step * 30_000) for step in range(-2, 3)}
    return next(c for c in ("000000", "111111", "222222", "333333", "444444", "555555") if c not in valid)
