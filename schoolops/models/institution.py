"""
Institution (tenant) and its per-institution settings row.

Every other table hangs off ``institutions.id``; queries are always filtered
by the caller's institution.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from schoolops.db.base import Base


class Institution(Base):
    __tablename__ = "institutions"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    slug: str = Column(String(100), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    email: str | None = Column(String(320), nullable=True)  # type: ignore[assignment]
    phone: str | None = Column(String(30), nullable=True)  # type: ignore[assignment]
    address: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    settings = relationship(
        "InstitutionSettings",
        back_populates="institution",
        uselist=False,
        cascade="all, delete-orphan",
    )


class InstitutionSettings(Base):
    """One row per institution, created with defaults on first read."""

    __tablename__ = "institution_settings"

    id: int = Column(Integer, primary_key=True)  # type: ignore[assignment]
    institution_id: int = Column(  # type: ignore[assignment]
        Integer,
        ForeignKey("institutions.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    academic_year: str = Column(String(9), nullable=False, default="2024-2025")  # type: ignore[assignment]
    terms_per_year: int = Column(Integer, nullable=False, default=3)  # type: ignore[assignment]
    late_fee_percent: float = Column(Float, nullable=False, default=0.0)  # type: ignore[assignment]
    currency: str = Column(String(3), nullable=False, default="USD")  # type: ignore[assignment]
    timezone: str = Column(String(64), nullable=False, default="UTC")  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    institution = relationship("Institution", back_populates="settings")
