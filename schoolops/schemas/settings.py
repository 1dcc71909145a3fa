"""Pydantic schemas for institution profile and settings."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator


class InstitutionProfileRead(BaseModel):
    id: int
    name: str
    slug: str
    email: str | None
    phone: str | None
    address: str | None

    model_config = {"from_attributes": True}


class InstitutionProfileUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=200)
    email: str | None = Field(default=None, max_length=320)
    phone: str | None = Field(default=None, max_length=30)
    address: str | None = Field(default=None, max_length=500)


class InstitutionSettingsRead(BaseModel):
    academic_year: str
    terms_per_year: int
    late_fee_percent: float
    currency: str
    timezone: str
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class InstitutionSettingsUpdate(BaseModel):
    academic_year: str | None = Field(default=None, pattern=r"^\d{4}-\d{4}$")
    terms_per_year: int | None = Field(default=None, ge=1, le=6)
    late_fee_percent: float | None = Field(default=None, ge=0, le=100)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    timezone: str | None = Field(default=None, min_length=1, max_length=64)

    @field_validator("academic_year")
    @classmethod
    def _consecutive_years(cls, v: str | None) -> str | None:
        if v is None:
            return v
        start, end = (int(part) for part in v.split("-"))
        if end != start + 1:
            raise ValueError("Academic year must span two consecutive years")
        return v

    @field_validator("currency")
    @classmethod
    def _upper(cls, v: str | None) -> str | None:
        return v.upper() if v else v


class SettingsRead(BaseModel):
    institution: InstitutionProfileRead
    settings: InstitutionSettingsRead
