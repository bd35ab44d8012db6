"""
auth/gate.py -- Request-time authorization decisions.

authorize(path, claims) is a pure function: no I/O, no clock, no module state
that changes. The same (path, claims) pair always produces the same Decision.
The HTTP middleware in api/main.py is the only caller that turns a Decision
into a response.

Rules, first match wins:
  1. ADMIN session                        -> forward
  2. public API prefix (/api/auth/ ...)   -> forward, session or not
  3. other /api/ path                     -> 401 without a session, else forward
  4. "/"                                  -> redirect to the role's home, or sign-in
  5. not under /host, /attendee, /admin   -> forward
  6. protected path                       -> sign-in without a session; otherwise
                                             the second path segment must equal the
                                             session's own tenant id, else redirect
                                             to that role's dashboard

A tenant mismatch never redirects toward the requested (foreign) tenant path.

Layer rule: no imports from api/, notify/ or the store.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from auth.models import ATTENDEE_ROLES, HOST_ROLES, Role, SessionClaims

SIGNIN_PATH = "/auth/signin"
UNAUTHORIZED_PATH = "/auth/unauthorized"
ADMIN_HOME = "/admin/me"

PUBLIC_API_PREFIXES: tuple[str, ...] = ("/api/auth/", "/api/users/", "/api/health")
PROTECTED_PREFIXES: tuple[str, ...] = ("/host", "/attendee", "/admin")


class Action(str, Enum):
    FORWARD = "forward"
    REDIRECT = "redirect"
    REJECT = "reject"


class Reason(str, Enum):
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN_TENANT_MISMATCH = "forbidden_tenant_mismatch"
    UNKNOWN_ROLE = "unknown_role"


@dataclass(frozen=True)
class Decision:
    action: Action
    location: str | None = None
    status: int | None = None
    reason: Reason | None = None


FORWARD = Decision(Action.FORWARD)


def _redirect(location: str, reason: Reason | None = None) -> Decision:
    return Decision(Action.REDIRECT, location=location, reason=reason)


def home_path(claims: SessionClaims) -> str | None:
    """Landing page for a role, or None if the role is unknown or its tenant id is missing."""
    if claims.role == Role.ADMIN.value:
        return ADMIN_HOME
    if claims.role in HOST_ROLES and claims.host_id:
        return f"/host/{claims.host_id}/dashboard"
    if claims.role in ATTENDEE_ROLES and claims.attendee_id:
        return f"/attendee/{claims.attendee_id}/dashboard"
    return None


def _segment(path: str, index: int) -> str:
    parts = path.split("/")
    return parts[index] if len(parts) > index else ""


def authorize(path: str, claims: SessionClaims | None) -> Decision:
    # 1. admins reach everything
    if claims is not None and claims.role == Role.ADMIN.value:
        return FORWARD

    # 2. sign-in endpoints must stay reachable without a session
    if path.startswith(PUBLIC_API_PREFIXES):
        return FORWARD

    # 3. remaining API: authenticated only, per-resource checks live in handlers
    if path.startswith("/api/"):
        if claims is None:
            return Decision(Action.REJECT, status=401, reason=Reason.UNAUTHORIZED)
        return FORWARD

    # 4. root dispatches by role
    if path == "/":
        if claims is None:
            return _redirect(SIGNIN_PATH)
        home = home_path(claims)
        if home is None:
            return _redirect(UNAUTHORIZED_PATH, Reason.UNKNOWN_ROLE)
        return _redirect(home)

    # 5. everything outside the tenant trees passes through
    if not path.startswith(PROTECTED_PREFIXES):
        return FORWARD

    # 6. tenant trees
    if claims is None:
        return _redirect(SIGNIN_PATH, Reason.UNAUTHORIZED)

    home = home_path(claims)
    if home is None:
        # unknown role, or a tenant role without its tenant id
        return _redirect(UNAUTHORIZED_PATH, Reason.UNKNOWN_ROLE)

    if claims.role in HOST_ROLES:
        tree, tenant_id = "/host/", claims.host_id
    else:
        tree, tenant_id = "/attendee/", claims.attendee_id
    if path.startswith(tree) and _segment(path, 2) == tenant_id:
        return FORWARD
    return _redirect(home, Reason.FORBIDDEN_TENANT_MISMATCH)
