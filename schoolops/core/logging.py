"""
Logging helpers — PII redaction for anything that ends up in log lines.
"""

from __future__ import annotations

import logging
from typing import Any

REDACT_KEYS = (
    "password",
    "secret",
    "token",
    "authorization",
    "email",
    "phone",
    "transactionref",
    "receiptnumber",
)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


def _should_redact(key: str) -> bool:
    normalised = key.lower()
    return any(sensitive in normalised for sensitive in REDACT_KEYS)


def _redact_string(value: str) -> str:
    if not value:
        return value
    if len(value) <= 6:
        return "***"
    return f"{value[:2]}***{value[-2:]}"


def redact_pii(value: Any) -> Any:
    """
    Return a copy of *value* that is safe to log.

    Bare strings are always masked; inside mappings only string values under
    a sensitive-looking key are, and everything else is walked recursively.
    """
    if value is None:
        return value
    if isinstance(value, str):
        return _redact_string(value)
    if isinstance(value, (list, tuple)):
        return [redact_pii(item) for item in value]
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for key, item in value.items():
            if _should_redact(str(key)) and isinstance(item, str):
                out[key] = _redact_string(item)
            elif isinstance(item, (dict, list, tuple)):
                out[key] = redact_pii(item)
            else:
                out[key] = item
        return out
    return value


def log_api_error(scope: str, error: BaseException | str, context: dict | None = None) -> None:
    """Log a failed request with its context redacted."""
    logging.getLogger("schoolops.api").error(
        "[%s] %s | context=%s",
        scope,
        error,
        redact_pii(context) if context else None,
        exc_info=error if isinstance(error, BaseException) else None,
    )
