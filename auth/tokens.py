"""
auth/tokens.py -- Password hashing, one-time codes, reset tokens, session JWTs.

Security design decisions:
  Passwords: bcrypt with an explicit cost factor (Settings.bcrypt_rounds,
       minimum 12). The _DUMMY_HASH constant enables timing equalization in
       the password sign-in path so response time does not reveal whether an
       email exists [C1].

  One-time codes: 8 characters from the 62-char alphanumeric alphabet drawn
       with secrets.choice (CSPRNG). Only HMAC-SHA256(SECRET_KEY, email:code)
       is stored, so a leaked verification table does not leak live codes.

  Reset tokens: uuid4 strings. Lifetime is enforced by the store's
       conditional update, not here.

  Sessions: python-jose with HS256. The payload carries the SessionClaims
       fields plus sub/iat/exp. Verification returns None on any failure --
       the gate treats that as "no session".

Every function that needs a key or a lifetime takes it as an argument.
Nothing in this module reads configuration.

Layer rule: no imports from api/ or notify/.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import string
import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from auth.models import SessionClaims

_ALGORITHM = "HS256"

SESSION_COOKIE = "session_token"

OTP_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
OTP_LENGTH = 8

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = 12) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are truncated by bcrypt. The API layer caps
    password fields at 72 characters.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Never raises: an empty, truncated or otherwise malformed hash is a mismatch.
    """
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Timing equalization dummy hash [C1]. Computed once at module load so the
# first sign-in attempt is not measurably slower than later ones.
_DUMMY_HASH: str = hash_password("expressconnect_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Spend one bcrypt verification on a throwaway hash [C1]."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# One-time codes
# ---------------------------------------------------------------------------


def generate_one_time_code(length: int = OTP_LENGTH) -> str:
    """Return a fresh sign-in code drawn uniformly from A-Z, a-z, 0-9."""
    return "".join(secrets.choice(OTP_ALPHABET) for _ in range(length))


def hash_one_time_code(secret_key: str, email: str, code: str) -> str:
    """Return HMAC-SHA256(secret_key, "email:code") as a hex string.

    Binding the email into the digest means a code issued for one address can
    never satisfy a lookup for another. Deterministic so the store can match
    by equality inside a single DELETE.
    """
    return hmac.new(
        secret_key.encode(),
        f"{email}:{code}".encode(),
        hashlib.sha256,
    ).hexdigest()


# ---------------------------------------------------------------------------
# Reset tokens
# ---------------------------------------------------------------------------


def new_reset_token() -> str:
    return str(uuid.uuid4())


def is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return False
    return True


# ---------------------------------------------------------------------------
# Session JWT encode / decode
# ---------------------------------------------------------------------------


def create_session_token(claims: SessionClaims, secret_key: str, expire_seconds: int) -> str:
    """Encode a signed JWT carrying the session claims.

    Args:
        claims:         Claims built by AuthOrchestrator.build_claims().
        secret_key:     Settings.secret_key.
        expire_seconds: Session lifetime; the cookie max_age must match.
    """
    now = datetime.now(timezone.utc)
    payload = claims.to_payload()
    payload.update(
        {
            "sub": claims.id,
            "iat": now,
            "exp": now + timedelta(seconds=expire_seconds),
        }
    )
    return jwt.encode(payload, secret_key, algorithm=_ALGORITHM)


def decode_session_token(token: str, secret_key: str) -> dict | None:
    """Decode and verify a session JWT. Returns the payload dict or None on any failure.

    A payload without id or role is treated as invalid.
    """
    try:
        payload = jwt.decode(token, secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if not payload.get("id") or not payload.get("role"):
        return None
    return payload


def needs_refresh(payload: dict, expire_seconds: int) -> bool:
    """True once less than half of the session lifetime remains."""
    exp = payload.get("exp")
    if not isinstance(exp, (int, float)):
        return False
    remaining = exp - datetime.now(timezone.utc).timestamp()
    return remaining < expire_seconds / 2


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, max_age: int, secure: bool) -> None:
    """Write the session JWT as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: matches the JWT expiry so both expire together.
    """
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE)
