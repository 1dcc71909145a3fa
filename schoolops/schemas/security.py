"""Pydantic schemas for two-factor enrollment."""

from __future__ import annotations

from pydantic import BaseModel, Field

_CODE_PATTERN = r"^\d{6}$"


class TwoFactorStatus(BaseModel):
    enabled: bool


class TwoFactorSetup(BaseModel):
    secret: str
    otpauth_uri: str


class TwoFactorEnable(BaseModel):
    code: str = Field(pattern=_CODE_PATTERN)
    secret: str = Field(min_length=16, max_length=128)


class TwoFactorDisable(BaseModel):
    code: str = Field(pattern=_CODE_PATTERN)
