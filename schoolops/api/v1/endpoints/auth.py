"""
Auth endpoints — login (OAuth2 password flow + optional one-time code),
token refresh, logout and the caller's own profile.
"""

import logging

from fastapi import APIRouter, Cookie, Depends, Form, Request, Response
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolops.api.v1.deps import AuthContext, get_auth_context, get_db
from schoolops.core import rbac, totp
from schoolops.core.config import settings
from schoolops.core.exceptions import forbidden, unauthorized
from schoolops.core.rate_limit import limiter
from schoolops.core.security import (create_access_token, create_refresh_token,
                                     decode_refresh_token, decrypt_secret,
                                     verify_password)
from schoolops.models.user import User
from schoolops.schemas.envelope import Envelope, ok
from schoolops.schemas.token import LogoutResponse, RefreshRequest, Token
from schoolops.schemas.user import UserRead

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def _issue_tokens(response: Response, user: User) -> Token:
    """Mint a token pair and mirror it into HttpOnly cookies."""
    access_token = create_access_token(user.id, role=user.role, institution_id=user.institution_id)
    refresh_token = create_refresh_token(user.id)

    response.set_cookie(
        key="access_token",
        value=f"Bearer {access_token}",
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    response.set_cookie(
        key="refresh_token",
        value=refresh_token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    )
    return Token(
        access_token=access_token,
        refresh_token=refresh_token,
        redirect_to=rbac.default_dashboard_path(user.role),
    )


def _check_second_factor(user: User, otp: str | None) -> None:
    secret = decrypt_secret(user.two_factor_secret)
    if secret is None:
        # Fail closed: an unreadable credential must not silently disable 2FA.
        logger.error("Two-factor secret for user %s could not be decrypted", user.id)
        raise unauthorized(
            "Two-factor credential unavailable, contact an administrator",
            code="TWO_FACTOR_UNAVAILABLE",
        )
    if not otp:
        raise unauthorized("Two-factor code required", code="TWO_FACTOR_REQUIRED")
    if not totp.verify_code(secret, otp, window=settings.TWO_FACTOR_WINDOW):
        logger.warning("Invalid two-factor code for user %s", user.id)
        raise unauthorized("Invalid two-factor code", code="INVALID_TWO_FACTOR_CODE")


@router.post("/login", response_model=Token)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login_for_access_token(
    request: Request,
    response: Response,
    form_data: OAuth2PasswordRequestForm = Depends(),
    otp: str | None = Form(default=None),
    db: AsyncSession = Depends(get_db),
) -> Token:
    """Authenticate with email/password (+ TOTP code when enabled). Sets HttpOnly cookies."""
    result = await db.execute(
        select(User).where(User.email == form_data.username.lower().strip())
    )
    user = result.scalar_one_or_none()

    if user is None or not verify_password(form_data.password, user.hashed_password):
        raise unauthorized("Incorrect email or password", code="INVALID_CREDENTIALS")
    if not user.is_active:
        raise forbidden("User account is inactive")

    if user.two_factor_enabled:
        _check_second_factor(user, otp)

    logger.info("User %s signed in (role=%s)", user.id, user.role)
    return _issue_tokens(response, user)


@router.post("/refresh", response_model=Token)
@limiter.limit("10/minute")
async def refresh_access_token_endpoint(
    request: Request,
    response: Response,
    body: RefreshRequest | None = None,
    refresh_token_cookie: str | None = Cookie(None, alias="refresh_token"),
    db: AsyncSession = Depends(get_db),
) -> Token:
    # Priority: Body > Cookie
    token_str = body.refresh_token if body and body.refresh_token else refresh_token_cookie
    if not token_str:
        raise unauthorized("Refresh token missing")

    payload = decode_refresh_token(token_str)
    if payload is None or not str(payload.get("sub", "")).isdigit():
        raise unauthorized("Invalid or expired refresh token", code="INVALID_TOKEN")

    result = await db.execute(select(User).where(User.id == int(payload["sub"])))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise unauthorized("User not found or inactive")

    return _issue_tokens(response, user)


@router.post("/logout", response_model=LogoutResponse)
async def logout(response: Response) -> LogoutResponse:
    """Clear auth cookies and end the session."""
    response.delete_cookie("access_token")
    response.delete_cookie("refresh_token")
    return LogoutResponse(message="Logged out")


@router.get("/me", response_model=Envelope[UserRead])
async def read_current_user(
    ctx: AuthContext = Depends(get_auth_context),
) -> dict:
    """Return profile of the currently authenticated user."""
    return ok(
        UserRead.model_validate(ctx.user),
        meta={
            "privileged": rbac.is_privileged_role(ctx.role),
            "defaultPath": rbac.default_dashboard_path(ctx.role),
            "allowedPrefixes": list(rbac.allowed_dashboard_prefixes(ctx.role)),
        },
    )
