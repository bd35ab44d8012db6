"""
api/limiter.py -- The one slowapi Limiter shared by the app and the auth routes.

api/main.py mounts it (app.state.limiter + SlowAPIMiddleware); api/routes/auth.py
decorates the credential-submitting endpoints with @limiter.limit(). Counters
live in process memory and are keyed by client IP, so every endpoint must use
this instance or its counter would never be consulted.

The credential limit string is bound once by api/main.py from
LOGIN_RATE_LIMIT; credential_limit() is the dynamic limit slowapi evaluates
per request.

Tests switch it off with `limiter.enabled = False`.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")

_credential_limit = "10/minute"


def configure_credential_limit(value: str) -> None:
    global _credential_limit
    _credential_limit = value


def credential_limit() -> str:
    return _credential_limit
