"""
User model — authentication, role and two-factor state.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from schoolops.core.rbac import Role
from schoolops.db.base import Base


class User(Base):
    __tablename__ = "users"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    institution_id: int = Column(  # type: ignore[assignment]
        Integer,
        ForeignKey("institutions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email: str = Column(String(320), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    hashed_password: str = Column(String(128), nullable=False)  # type: ignore[assignment]
    full_name: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    role: str = Column(  # type: ignore[assignment]
        String(20),
        nullable=False,
        default=Role.STUDENT.value,
        server_default=Role.STUDENT.value,
    )  # one of rbac.Role
    is_active: bool = Column(Boolean, default=True, server_default="true")  # type: ignore[assignment]
    # Fernet-encrypted base32 secret ("v1:<token>"); NULL while 2FA is off
    two_factor_secret: str | None = Column(Text, nullable=True)  # type: ignore[assignment]
    two_factor_enabled_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def two_factor_enabled(self) -> bool:
        return self.two_factor_secret is not None
