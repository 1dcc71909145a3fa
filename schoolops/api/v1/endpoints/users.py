"""
User management within the caller's institution.

- GET requires ``users:read``; POST ``users:create``; PATCH ``users:update``.
- Nobody may modify their own account through these endpoints.
- Only SUPER_ADMIN / ADMIN change roles, and only SUPER_ADMIN grants SUPER_ADMIN.
- PRINCIPAL, ADMIN and SUPER_ADMIN accounts are only modified (including
  deactivation and 2FA reset) by a higher rank; SUPER_ADMIN may modify anyone.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolops.api.v1.deps import (AuthContext, get_db, require_permission,
                                   require_privileged)
from schoolops.core import rbac
from schoolops.core.exceptions import ApiError, forbidden, not_found
from schoolops.core.rbac import Action, Resource, Role
from schoolops.core.security import get_password_hash
from schoolops.models.user import User
from schoolops.schemas.envelope import Envelope, ListQuery, ok, pagination_meta
from schoolops.schemas.user import UserCreate, UserRead, UserUpdate

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger(__name__)

_ROLE_MANAGERS = {Role.SUPER_ADMIN, Role.ADMIN}

# Privileged accounts can only be managed by someone ranked above them.
_RANK = {Role.SUPER_ADMIN: 3, Role.ADMIN: 2, Role.PRINCIPAL: 1}


def _check_can_manage(ctx: AuthContext, target: User) -> None:
    if ctx.role is Role.SUPER_ADMIN:
        return
    target_rank = _RANK.get(rbac.parse_role(target.role), 0)
    if target_rank and target_rank >= _RANK.get(ctx.role, 0):
        raise forbidden("Cannot modify an account with equal or higher privileges")


async def _get_member(db: AsyncSession, ctx: AuthContext, user_id: int) -> User:
    """Load a user of the caller's institution that the caller may modify."""
    result = await db.execute(
        select(User).where(User.id == user_id, User.institution_id == ctx.institution_id)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise not_found("User not found")
    _check_can_manage(ctx, user)
    return user


def _check_role_grant(ctx: AuthContext, role: Role) -> None:
    if role is Role.SUPER_ADMIN and ctx.role is not Role.SUPER_ADMIN:
        raise forbidden("Only a super admin can grant the SUPER_ADMIN role")


@router.get("", response_model=Envelope[list[UserRead]])
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    q: str = Query("", max_length=200),
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require_permission(Resource.USERS, Action.READ)),
) -> dict:
    query = ListQuery(page=page, limit=limit, q=q)
    stmt = select(User).where(User.institution_id == ctx.institution_id)
    if query.q:
        pattern = f"%{query.q.strip().lower()}%"
        stmt = stmt.where(or_(func.lower(User.email).like(pattern), func.lower(User.full_name).like(pattern)))

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    result = await db.execute(stmt.order_by(User.id).offset(query.offset).limit(query.limit))
    users = [UserRead.model_validate(u) for u in result.scalars().all()]
    return ok(users, meta=pagination_meta(query, total))


@router.post("", response_model=Envelope[UserRead], status_code=201)
async def create_user(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require_permission(Resource.USERS, Action.CREATE)),
) -> dict:
    """Create a user account in the caller's institution."""
    _check_role_grant(ctx, body.role)

    existing = await db.execute(select(User).where(User.email == body.email))
    if existing.scalar_one_or_none():
        raise ApiError(400, "EMAIL_TAKEN", "Email already registered")

    user = User(
        institution_id=ctx.institution_id,
        email=body.email,
        hashed_password=get_password_hash(body.password),
        full_name=body.full_name,
        role=body.role.value,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("User %s created by %s with role %s", user.id, ctx.user_id, user.role)
    return ok(UserRead.model_validate(user))


@router.patch("/{user_id}", response_model=Envelope[UserRead])
async def update_user(
    user_id: int,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require_permission(Resource.USERS, Action.UPDATE)),
) -> dict:
    if user_id == ctx.user_id:
        raise ApiError(400, "SELF_MODIFICATION", "Cannot modify your own account")

    user = await _get_member(db, ctx, user_id)
    changes = body.model_dump(exclude_unset=True)

    if "role" in changes and changes["role"] is not None:
        if ctx.role not in _ROLE_MANAGERS:
            raise forbidden("Only administrators can change roles")
        _check_role_grant(ctx, changes["role"])
        changes["role"] = changes["role"].value

    for field, value in changes.items():
        if value is not None:
            setattr(user, field, value)

    await db.commit()
    await db.refresh(user)
    logger.info("User %s updated by %s: %s", user.id, ctx.user_id, sorted(changes))
    return ok(UserRead.model_validate(user))


@router.delete("/{user_id}/two-factor", response_model=Envelope[UserRead])
async def reset_two_factor(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require_privileged),
) -> dict:
    """Clear another user's 2FA enrollment (lost device)."""
    if user_id == ctx.user_id:
        raise ApiError(400, "SELF_MODIFICATION", "Use /auth/2fa/disable for your own account")

    user = await _get_member(db, ctx, user_id)
    user.two_factor_secret = None
    user.two_factor_enabled_at = None
    await db.commit()
    await db.refresh(user)
    logger.warning("Two-factor reset for user %s by %s", user.id, ctx.user_id)
    return ok(UserRead.model_validate(user))
