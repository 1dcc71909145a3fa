"""
JWT token creation / verification, password hashing (bcrypt) and
encryption at rest for two-factor secrets (Fernet).
"""

from __future__ import annotations

import base64
import hashlib
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

from cryptography.fernet import Fernet, InvalidToken
from jose import JWTError, jwt
from passlib.context import CryptContext

from schoolops.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

_ALGORITHM = settings.ALGORITHM
_SECRET = settings.SECRET_KEY
_SECRET_VERSION = "v1"


# ── Passwords ───────────────────────────────────────────────────────
def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def get_password_hash(plain: str) -> str:
    return pwd_context.hash(plain)


# ── JWT tokens ──────────────────────────────────────────────────────
def create_access_token(
    subject: str | Any,
    role: str | None = None,
    institution_id: int | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    claims: dict[str, Any] = {"exp": expire, "sub": str(subject), "type": "access"}
    if role is not None:
        claims["role"] = str(role.value if hasattr(role, "value") else role)
    if institution_id is not None:
        claims["institution_id"] = institution_id
    return jwt.encode(claims, _SECRET, algorithm=_ALGORITHM)


def create_refresh_token(subject: str | Any) -> str:
    expire = datetime.now(timezone.utc) + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return jwt.encode(
        {"exp": expire, "sub": str(subject), "type": "refresh"},
        _SECRET,
        algorithm=_ALGORITHM,
    )


def _decode(token: str, expected_type: str) -> dict | None:
    try:
        payload = jwt.decode(token, _SECRET, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != expected_type:
        return None
    return payload


def decode_access_token(token: str) -> dict | None:
    """Return payload dict if *access* token is valid, else ``None``."""
    return _decode(token, "access")


def decode_refresh_token(token: str) -> dict | None:
    """Return payload dict if *refresh* token is valid, else ``None``."""
    return _decode(token, "refresh")


# ── Two-factor secrets at rest ──────────────────────────────────────
@lru_cache(maxsize=1)
def _fernet() -> Fernet:
    key = settings.TWO_FACTOR_ENCRYPTION_KEY
    if not key:
        key = base64.urlsafe_b64encode(hashlib.sha256(_SECRET.encode("utf-8")).digest()).decode()
    return Fernet(key)


def encrypt_secret(secret: str) -> str:
    """Encrypt a base32 TOTP secret for storage (``v1:<fernet token>``)."""
    token = _fernet().encrypt(secret.encode("utf-8")).decode("ascii")
    return f"{_SECRET_VERSION}:{token}"


def decrypt_secret(payload: str | None) -> str | None:
    """Reverse :func:`encrypt_secret`; ``None`` when the payload is unusable."""
    if not payload:
        return None
    version, _, token = payload.partition(":")
    if version != _SECRET_VERSION or not token:
        return None
    try:
        return _fernet().decrypt(token.encode("ascii")).decode("utf-8")
    except InvalidToken:
        return None
