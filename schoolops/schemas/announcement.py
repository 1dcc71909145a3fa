"""Pydantic schemas for announcements."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class AnnouncementPriority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class AnnouncementCreate(BaseModel):
    title: str = Field(max_length=200)
    body: str = Field(max_length=10_000)
    priority: AnnouncementPriority = AnnouncementPriority.NORMAL

    @field_validator("title", "body")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Must not be empty")
        return v


class AnnouncementRead(BaseModel):
    id: int
    title: str
    body: str
    priority: AnnouncementPriority
    author_id: int | None
    created_at: datetime | None

    model_config = {"from_attributes": True}
