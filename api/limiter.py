"""
api/limiter.py -- Shared slowapi rate limiter instance.

This is the HTTP-level throttle keyed by client address. It sits in front of
the login route and is independent of the per-identifier limiter in
auth/rate_limit.py: one caps request volume per source, the other caps
guesses per account.

Import this in both api/main.py (to mount as middleware) and
api/routes/v1/auth.py (to apply per-route limits with @limiter.limit()).
A single shared instance keeps one counter store for every route.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_limit() -> str:
    """Per-address limit for POST /auth/login, read from LOGIN_RATE_LIMIT."""
    return get_settings().login_rate_limit
