"""Announcements published to everyone in an institution."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text

from schoolops.db.base import Base


class Announcement(Base):
    __tablename__ = "announcements"
    __table_args__ = (Index("ix_announcements_institution_created", "institution_id", "created_at"),)

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    institution_id: int = Column(  # type: ignore[assignment]
        Integer,
        ForeignKey("institutions.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    body: str = Column(Text, nullable=False)  # type: ignore[assignment]
    priority: str = Column(String(10), nullable=False, default="NORMAL")  # type: ignore[assignment]
    # LOW | NORMAL | HIGH | URGENT
    author_id: int | None = Column(  # type: ignore[assignment]
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
