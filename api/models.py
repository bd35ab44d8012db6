"""
API request and response models for the Express Connect auth endpoints.

These Pydantic v2 models define the HTTP transport contract. They are separate
from the dataclasses in auth/models.py, which own the domain representation;
route handlers map between the two.

JSON field names are camelCase (hostId, hasPassword, confirmPassword) to match
the browser client. Python attribute names stay snake_case via the alias
generator; populate_by_name lets tests and callers use either.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import AccountStatus, SessionClaims

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one "@", no whitespace, a dot in the domain. Delivery is
# the real validation.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# bcrypt truncates at 72 bytes; refusing longer input avoids silent truncation.
_PASSWORD_MAX = 72


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class EmailRequest(_CamelModel):
    """Body for status checks, email-code requests and forgot-password."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)


class EmailCodeVerifyRequest(_CamelModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    code: str = Field(min_length=1, max_length=32)


class PasswordLoginRequest(_CamelModel):
    # Passwords are never whitespace-stripped.
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


class CreatePasswordRequest(_CamelModel):
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    confirm_password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


class ResetPasswordRequest(_CamelModel):
    token: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SessionResponse(_CamelModel):
    """The signed-in identity, as returned by sign-in endpoints and GET /session."""

    model_config = ConfigDict(frozen=True)

    id: str
    role: str
    host_id: str
    attendee_id: str
    name: str
    email: str

    @classmethod
    def from_claims(cls, claims: SessionClaims) -> "SessionResponse":
        return cls(
            id=claims.id,
            role=claims.role,
            host_id=claims.host_id,
            attendee_id=claims.attendee_id,
            name=claims.name,
            email=claims.email,
        )


class AccountStatusResponse(_CamelModel):
    model_config = ConfigDict(frozen=True)

    exists: bool
    has_password: bool
    error: Optional[str] = None

    @classmethod
    def from_status(cls, status: AccountStatus) -> "AccountStatusResponse":
        if not status.exists:
            return cls(exists=False, has_password=False, error="No account found with this email address")
        return cls(exists=True, has_password=status.has_password)


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class SuccessResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
