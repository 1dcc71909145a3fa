"""
FastAPI dependencies — database session, authentication and the RBAC guard.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import dataclass
from typing import Optional

from fastapi import Cookie, Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolops.core import rbac
from schoolops.core.exceptions import forbidden, unauthorized
from schoolops.core.rbac import Action, Resource, Role
from schoolops.core.security import decode_access_token
from schoolops.db.session import async_session_factory
from schoolops.models.user import User

logger = logging.getLogger(__name__)

# auto_error=False so we can fall back to the HttpOnly cookie
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


# ── Database session ────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


# ── Auth dependencies ───────────────────────────────────────────────
async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(default=None),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decode JWT from Header OR Cookie, look up user."""
    final_token = token
    if not final_token and access_token:
        final_token = access_token.removeprefix("Bearer ").strip()

    if not final_token:
        raise unauthorized()

    payload = decode_access_token(final_token)
    if payload is None:
        raise unauthorized("Invalid or expired authentication token", code="INVALID_TOKEN")

    user_id = payload.get("sub")
    if user_id is None or not str(user_id).isdigit():
        raise unauthorized("Token contains invalid claims", code="INVALID_TOKEN")

    result = await db.execute(select(User).where(User.id == int(user_id)))
    user = result.scalar_one_or_none()
    if user is None:
        raise unauthorized()
    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Reject inactive accounts."""
    if not current_user.is_active:
        raise forbidden("User account is inactive")
    return current_user


@dataclass(frozen=True)
class AuthContext:
    """Who is calling, resolved once per request."""

    user: User
    role: Role | None
    institution_id: int

    @property
    def user_id(self) -> int:
        return self.user.id


async def get_auth_context(
    user: User = Depends(get_current_active_user),
) -> AuthContext:
    role = rbac.parse_role(user.role)
    if role is None:
        logger.warning("User %s has unknown role %r; treating as no access", user.id, user.role)
    return AuthContext(user=user, role=role, institution_id=user.institution_id)


def require_permission(
    resource: Resource,
    action: Action,
) -> Callable[..., Awaitable[AuthContext]]:
    """
    Dependency factory guarding a route with ``rbac.can``.

    Usage::

        @router.get("/settings")
        async def read_settings(ctx: AuthContext = Depends(require_permission(Resource.SETTINGS, Action.READ))):
            ...

    Raises 401 without a valid session and 403 when the role is not allowed.
    """

    async def _guard(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if not rbac.can(ctx.role, resource, action):
            logger.warning(
                "Access denied: user %s (%s) -> %s:%s",
                ctx.user_id,
                ctx.user.role,
                resource.value,
                action.value,
            )
            raise forbidden()
        return ctx

    _guard.__name__ = f"require_{resource.value}_{action.value}"
    return _guard


async def require_privileged(
    ctx: AuthContext = Depends(get_auth_context),
) -> AuthContext:
    """Coarse admin gate (SUPER_ADMIN, ADMIN, PRINCIPAL)."""
    if not rbac.is_privileged_role(ctx.role):
        raise forbidden("Administrator privileges required")
    return ctx
