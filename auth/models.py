"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, minimal logic). Stores, services and
routes do the work; these types own the domain shape.

Layer rule: no imports from api/ or notify/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    ADMIN = "ADMIN"
    HOST_ADMIN = "HOST_ADMIN"
    HOST_TEAM_MEMBER = "HOST_TEAM_MEMBER"
    ATTENDEE = "ATTENDEE"
    ATTENDEE_ADMIN = "ATTENDEE_ADMIN"


HOST_ROLES = frozenset({Role.HOST_ADMIN.value, Role.HOST_TEAM_MEMBER.value})
ATTENDEE_ROLES = frozenset({Role.ATTENDEE.value, Role.ATTENDEE_ADMIN.value})


def normalize_email(email: str) -> str:
    """Every lookup and write is keyed by the trimmed, lower-cased address."""
    return email.strip().lower()


@dataclass
class Account:
    """An identity record in the system of record.

    hashed_password is None whenever password_set is False: the email-code
    channel wipes both together, and only create_password / a completed reset
    set them again.

    reset_token and reset_token_expiry are written and cleared as a pair.

    Tenant linkage: host roles carry host_id, attendee roles carry
    attendee_company_id, ADMIN carries neither.
    """

    email: str
    role: str
    id: str | None = None
    first_name: str = ""
    last_name: str = ""
    hashed_password: str | None = None
    password_set: bool = False
    reset_token: str | None = None
    reset_token_expiry: datetime | None = None
    host_id: str | None = None
    attendee_company_id: str | None = None
    created_at: str | None = None

    @property
    def has_password(self) -> bool:
        return self.password_set and bool(self.hashed_password)


@dataclass(frozen=True)
class SessionClaims:
    """The identity facts carried by a signed session.

    Produced only by AuthOrchestrator.build_claims(); everything downstream
    reads them. Field names on the wire are camelCase (hostId, attendeeId).
    """

    id: str
    role: str
    host_id: str = ""
    attendee_id: str = ""
    name: str = ""
    email: str = ""

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "role": self.role,
            "hostId": self.host_id,
            "attendeeId": self.attendee_id,
            "name": self.name,
            "email": self.email,
        }

    @classmethod
    def from_payload(cls, payload: dict) -> SessionClaims:
        return cls(
            id=str(payload.get("id") or ""),
            role=str(payload.get("role") or ""),
            host_id=str(payload.get("hostId") or ""),
            attendee_id=str(payload.get("attendeeId") or ""),
            name=str(payload.get("name") or ""),
            email=str(payload.get("email") or ""),
        )


@dataclass(frozen=True)
class AccountStatus:
    """Result of the pre-sign-in status check."""

    exists: bool
    has_password: bool = False
