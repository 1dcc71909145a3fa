"""
Time-based one-time passwords (RFC 6238) for two-factor authentication.

HMAC-SHA1, 6 digits, 30-second period: the parameters every Google
Authenticator compatible app assumes when it scans an ``otpauth://`` URI.
Pure functions only; storing and encrypting the secret is the caller's job.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import re
import secrets
import struct
import time
from urllib.parse import quote, urlencode

DEFAULT_DIGITS = 6
DEFAULT_PERIOD_SECONDS = 30
DEFAULT_SECRET_BYTES = 20

_BASE32_RE = re.compile(r"^[A-Z2-7]+$")
# Unpadded base32 lengths the encoder can emit (len % 8).
_VALID_TAIL_LENGTHS = {0, 2, 4, 5, 7}


class InvalidSecretError(ValueError):
    """Raised when a shared secret is not valid base32."""


# ── Base32 ──────────────────────────────────────────────────────────
def encode_secret(raw: bytes) -> str:
    """Encode raw key bytes as unpadded RFC 4648 base32."""
    return base64.b32encode(raw).decode("ascii").rstrip("=")


def decode_secret(secret: str) -> bytes:
    """
    Decode an unpadded base32 secret back to raw bytes.

    Authenticator apps display secrets in groups, so spaces and hyphens are
    dropped and lowercase is accepted. Anything else outside ``A-Z2-7``
    raises :class:`InvalidSecretError`.
    """
    normalised = re.sub(r"[\s-]", "", secret or "").upper().rstrip("=")
    if not normalised or not _BASE32_RE.match(normalised):
        raise InvalidSecretError("Secret must be a non-empty base32 string")
    if len(normalised) % 8 not in _VALID_TAIL_LENGTHS:
        raise InvalidSecretError("Secret has an impossible base32 length")

    padded = normalised + "=" * (-len(normalised) % 8)
    try:
        return base64.b32decode(padded)
    except binascii.Error as exc:
        raise InvalidSecretError(str(exc)) from exc


def generate_secret(byte_length: int = DEFAULT_SECRET_BYTES) -> str:
    """Generate a new shared secret from the OS CSPRNG (base32, unpadded)."""
    if byte_length < 1:
        raise ValueError("byte_length must be positive")
    return encode_secret(secrets.token_bytes(byte_length))


def build_enrollment_uri(issuer: str, account_name: str, secret: str) -> str:
    """Build the ``otpauth://totp/...`` URI rendered as a QR code at enrollment."""
    label = quote(f"{issuer}:{account_name}", safe="")
    query = urlencode(
        {
            "secret": secret,
            "issuer": issuer,
            "algorithm": "SHA1",
            "digits": str(DEFAULT_DIGITS),
            "period": str(DEFAULT_PERIOD_SECONDS),
        }
    )
    return f"otpauth://totp/{label}?{query}"


# ── Codes ───────────────────────────────────────────────────────────
def _now_ms() -> int:
    return int(time.time() * 1000)


def time_step(timestamp_ms: int, period_seconds: int = DEFAULT_PERIOD_SECONDS) -> int:
    """Counter value for *timestamp_ms*: whole periods since the Unix epoch."""
    return int(timestamp_ms // (period_seconds * 1000))


def generate_code(
    secret: str,
    timestamp_ms: int | None = None,
    digits: int = DEFAULT_DIGITS,
    period_seconds: int = DEFAULT_PERIOD_SECONDS,
) -> str:
    """Derive the zero-padded code for *secret* at *timestamp_ms* (default: now)."""
    if timestamp_ms is None:
        timestamp_ms = _now_ms()

    key = decode_secret(secret)
    # Signed: the step before the epoch is -1 and still packs.
    counter = struct.pack(">q", time_step(timestamp_ms, period_seconds))
    digest = hmac.new(key, counter, hashlib.sha1).digest()

    # Dynamic truncation (RFC 4226 §5.3)
    offset = digest[-1] & 0x0F
    binary = struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF
    return str(binary % (10 ** digits)).zfill(digits)


def verify_code(
    secret: str,
    submitted_code: str,
    timestamp_ms: int | None = None,
    window: int = 1,
    digits: int = DEFAULT_DIGITS,
    period_seconds: int = DEFAULT_PERIOD_SECONDS,
) -> bool:
    """
    Check *submitted_code* against the codes for ``window`` periods either
    side of *timestamp_ms*.

    Malformed codes and undecodable secrets are a plain ``False`` so the
    caller cannot tell them apart from a wrong code.
    """
    code = (submitted_code or "").strip()
    if len(code) != digits or not code.isascii() or not code.isdigit():
        return False
    if timestamp_ms is None:
        timestamp_ms = _now_ms()

    step_ms = period_seconds * 1000
    matched = False
    try:
        for offset in range(-window, window + 1):
            candidate = generate_code(
                secret, timestamp_ms + offset * step_ms, digits, period_seconds
            )
            # No early exit: every candidate in the window costs the same.
            if hmac.compare_digest(candidate, code):
                matched = True
    except InvalidSecretError:
        return False
    return matched
