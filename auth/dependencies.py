"""
auth/dependencies.py -- Session extraction for the gate and route handlers.

Two places a session token can arrive, checked in priority order:
  1. "session_token" cookie -- set by the sign-in endpoints for browsers.
  2. Authorization: Bearer <token> header -- API clients.

read_session() is the soft variant used by the gate middleware: it never
raises and returns (claims, payload) or (None, None). The payload is returned
alongside so the middleware can decide whether the token is due for renewal.

Layer rule: auth/dependencies.py may import from fastapi because it reads the
Starlette request. It does not import from api/.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import SessionClaims
from auth.tokens import SESSION_COOKIE, decode_session_token


def _raw_token(request: Request) -> str | None:
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def read_session(request: Request) -> tuple[SessionClaims | None, dict | None]:
    """Return the verified claims and raw payload, or (None, None). Never raises."""
    token = _raw_token(request)
    if not token:
        return None, None
    payload = decode_session_token(token, request.app.state.settings.secret_key)
    if payload is None:
        return None, None
    return SessionClaims.from_payload(payload), payload


def try_get_session_claims(request: Request) -> SessionClaims | None:
    """Claims already resolved by the gate middleware, else decoded on demand."""
    claims = getattr(request.state, "session_claims", None)
    if claims is not None:
        return claims
    claims, _payload = read_session(request)
    return claims

