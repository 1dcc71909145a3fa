"""
Two-factor (TOTP) enrollment for the signed-in user.

Flow: ``POST /setup`` hands out a fresh secret and its otpauth URI (nothing
is stored yet), the user scans it, then ``POST /enable`` proves possession
with a code and the secret is stored encrypted. ``POST /disable`` requires a
current code as well.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from schoolops.api.v1.deps import AuthContext, get_auth_context, get_db
from schoolops.core import totp
from schoolops.core.config import settings
from schoolops.core.exceptions import ApiError
from schoolops.core.rate_limit import limiter
from schoolops.core.security import decrypt_secret, encrypt_secret
from schoolops.models.institution import Institution
from schoolops.schemas.envelope import Envelope, ok
from schoolops.schemas.security import (TwoFactorDisable, TwoFactorEnable,
                                        TwoFactorSetup, TwoFactorStatus)

router = APIRouter(prefix="/auth/2fa", tags=["two-factor"])
logger = logging.getLogger(__name__)


def _invalid_code() -> ApiError:
    return ApiError(400, "INVALID_TWO_FACTOR_CODE", "Invalid two-factor code")


def _already_enabled() -> ApiError:
    return ApiError(409, "TWO_FACTOR_ALREADY_ENABLED", "Two-factor authentication is already enabled")


@router.get("", response_model=Envelope[TwoFactorStatus])
async def two_factor_status(
    ctx: AuthContext = Depends(get_auth_context),
) -> dict:
    return ok(TwoFactorStatus(enabled=ctx.user.two_factor_enabled))


@router.post("/setup", response_model=Envelope[TwoFactorSetup])
async def two_factor_setup(
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Generate a candidate secret and the URI authenticator apps scan."""
    if ctx.user.two_factor_enabled:
        raise _already_enabled()

    institution = await db.get(Institution, ctx.institution_id)
    issuer = institution.name if institution else settings.TWO_FACTOR_ISSUER

    secret = totp.generate_secret()
    return ok(
        TwoFactorSetup(
            secret=secret,
            otpauth_uri=totp.build_enrollment_uri(issuer, ctx.user.email, secret),
        )
    )


@router.post("/enable", response_model=Envelope[TwoFactorStatus])
@limiter.limit(settings.TWO_FACTOR_RATE_LIMIT)
async def two_factor_enable(
    request: Request,
    body: TwoFactorEnable,
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Replacing an enrolled secret goes through /disable, which needs the current code.
    if ctx.user.two_factor_enabled:
        raise _already_enabled()
    if not totp.verify_code(body.secret, body.code, window=settings.TWO_FACTOR_WINDOW):
        logger.info("Two-factor enrollment rejected for user %s", ctx.user_id)
        raise _invalid_code()

    user = ctx.user  # loaded through the same request-scoped session
    user.two_factor_secret = encrypt_secret(totp.encode_secret(totp.decode_secret(body.secret)))
    user.two_factor_enabled_at = datetime.now(timezone.utc)
    await db.commit()

    logger.info("Two-factor authentication enabled for user %s", ctx.user_id)
    return ok(TwoFactorStatus(enabled=True))


@router.post("/disable", response_model=Envelope[TwoFactorStatus])
@limiter.limit(settings.TWO_FACTOR_RATE_LIMIT)
async def two_factor_disable(
    request: Request,
    body: TwoFactorDisable,
    ctx: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
) -> dict:
    if not ctx.user.two_factor_enabled:
        raise ApiError(409, "TWO_FACTOR_NOT_ENABLED", "Two-factor authentication is not enabled")

    secret = decrypt_secret(ctx.user.two_factor_secret)
    if secret is None or not totp.verify_code(secret, body.code, window=settings.TWO_FACTOR_WINDOW):
        raise _invalid_code()

    user = ctx.user  # loaded through the same request-scoped session
    user.two_factor_secret = None
    user.two_factor_enabled_at = None
    await db.commit()

    logger.info("Two-factor authentication disabled for user %s", ctx.user_id)
    return ok(TwoFactorStatus(enabled=False))
