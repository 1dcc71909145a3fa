"""
Request rate limiting (slowapi), keyed by client IP.

Brute-forcing a password or a 6-digit code is only a matter of attempts, so
every credential-checking endpoint is decorated with ``@limiter.limit``.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from schoolops.core.config import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)
