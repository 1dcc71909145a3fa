"""
Institution settings endpoints.

One settings row per institution: GET retrieves it (creating it with
defaults on first read), PUT updates it. The institution profile (name,
contact details) lives on the institution row itself.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolops.api.v1.deps import AuthContext, get_db, require_permission
from schoolops.core.exceptions import not_found
from schoolops.core.rbac import Action, Resource
from schoolops.models.institution import Institution, InstitutionSettings
from schoolops.schemas.envelope import Envelope, ok
from schoolops.schemas.settings import (InstitutionProfileRead,
                                        InstitutionProfileUpdate,
                                        InstitutionSettingsRead,
                                        InstitutionSettingsUpdate, SettingsRead)

router = APIRouter(prefix="/settings", tags=["settings"])
logger = logging.getLogger(__name__)


async def _get_institution(db: AsyncSession, institution_id: int) -> Institution:
    institution = await db.get(Institution, institution_id)
    if institution is None:
        raise not_found("Institution not found")
    return institution


async def _get_or_create_settings(db: AsyncSession, institution_id: int) -> InstitutionSettings:
    """Fetch the institution's settings row, creating it with defaults if absent."""
    result = await db.execute(
        select(InstitutionSettings).where(InstitutionSettings.institution_id == institution_id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = InstitutionSettings(institution_id=institution_id)
        db.add(row)
        await db.commit()
        await db.refresh(row)
        logger.info("Created default settings for institution %s", institution_id)
    return row


def _payload(institution: Institution, row: InstitutionSettings) -> SettingsRead:
    return SettingsRead(
        institution=InstitutionProfileRead.model_validate(institution),
        settings=InstitutionSettingsRead.model_validate(row),
    )


@router.get("", response_model=Envelope[SettingsRead])
async def get_settings(
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require_permission(Resource.SETTINGS, Action.READ)),
) -> dict:
    institution = await _get_institution(db, ctx.institution_id)
    row = await _get_or_create_settings(db, ctx.institution_id)
    return ok(_payload(institution, row))


@router.put("", response_model=Envelope[SettingsRead])
async def update_settings(
    body: InstitutionSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require_permission(Resource.SETTINGS, Action.UPDATE)),
) -> dict:
    """Update academic year, terms, late fee, currency or timezone."""
    institution = await _get_institution(db, ctx.institution_id)
    row = await _get_or_create_settings(db, ctx.institution_id)

    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(row, field, value)

    await db.commit()
    await db.refresh(row)
    logger.info("Settings for institution %s updated by %s: %s", ctx.institution_id, ctx.user_id, changes)
    return ok(_payload(institution, row), meta={"action": "institution-settings"})


@router.put("/profile", response_model=Envelope[SettingsRead])
async def update_profile(
    body: InstitutionProfileUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require_permission(Resource.SETTINGS, Action.UPDATE)),
) -> dict:
    institution = await _get_institution(db, ctx.institution_id)
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(institution, field, value)

    await db.commit()
    await db.refresh(institution)
    row = await _get_or_create_settings(db, ctx.institution_id)
    logger.info("Profile for institution %s updated by %s: %s", ctx.institution_id, ctx.user_id, sorted(changes))
    return ok(_payload(institution, row), meta={"action": "profile"})
