"""
One-time passcodes for email verification.

Codes live in the Django cache (Redis in production) keyed by email, expire
after OTP_TTL_SECONDS and can be used once.
"""

import logging
import secrets

from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger(__name__)


def _cache_key(email: str) -> str:
    return f"{settings.OTP_CACHE_PREFIX}{email.strip().lower()}"


def generate_otp() -> str:
    """6-digit numeric code."""
    return str(100000 + secrets.randbelow(900000))


def issue_otp(email: str) -> str:
    """Create (or replace) the code for `email` and return it."""
    code = generate_otp()
    cache.set(_cache_key(email), code, timeout=settings.OTP_TTL_SECONDS)
    logger.debug("Issued OTP for %s", email)
    return code


def validate_otp(email: str, code) -> bool:
    """True if `code` matches the stored code; a matching code is consumed."""
    if not email or code is None:
        return False

    key = _cache_key(email)
    stored = cache.get(key)
    if stored is None:
        return False
    if str(stored) != str(code).strip():
        return False

    cache.delete(key)
    return True
