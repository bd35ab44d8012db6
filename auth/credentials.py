"""
auth/credentials.py -- Credential & Token Service.

Owns the one-time-code window and the password-reset lifecycle on top of the
primitives in auth/tokens.py:

  issue_one_time_code()    -- fresh code, only its HMAC stored, replaces any
                              pending code for the same email.
  verify_one_time_code()   -- one conditional DELETE; a code verifies once.
  issue_reset_token()     -- new uuid4, expiry = now + ttl, full overwrite of
                              any previous token. The current password keeps
                              working until a reset is actually completed.
  consume_reset_token()    -- one conditional UPDATE swaps an unexpired token
                              for a new password hash. Failures are terminal
                              for the attempt: TokenExpired or TokenNotFound.
  initiate_password_reset()-- the "forgot password" entry point: issues a
                              token and mails the reset link. Unknown emails
                              return silently so the endpoint does not reveal
                              which addresses have accounts.

The clock is injected (`now`) so expiry boundaries can be tested exactly.

Layer rule: no imports from api/. notify/ is used only through the Notifier
protocol.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.errors import NotificationFailed, TokenExpired, TokenNotFound, ValidationFailed
from auth.models import Account, normalize_email
from auth.store import AccountStore
from auth.tokens import (
    generate_one_time_code,
    hash_one_time_code,
    hash_password,
    is_uuid,
    new_reset_token,
    verify_password,
)
from core.config import Settings
from notify.base import NotificationError, NotificationKind, Notifier, redact_email

logger = logging.getLogger("expressconnect.auth")

MIN_PASSWORD_LENGTH = 8


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def check_password_rules(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


class CredentialService:
    def __init__(
        self,
        store: AccountStore,
        notifier: Notifier,
        settings: Settings,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.settings = settings
        self.now = now

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def hash_password(self, plain: str) -> str:
        return hash_password(plain, rounds=self.settings.bcrypt_rounds)

    def verify_password(self, plain: str, hashed: str | None) -> bool:
        return verify_password(plain, hashed)

    # ------------------------------------------------------------------
    # One-time sign-in codes
    # ------------------------------------------------------------------

    def issue_one_time_code(self, email: str) -> str:
        """Generate a code and open its verification window. Returns the plaintext code."""
        email = normalize_email(email)
        code = generate_one_time_code()
        expires_at = self.now() + timedelta(seconds=self.settings.otp_max_age_seconds)
        self.store.save_verification_code(
            email,
            hash_one_time_code(self.settings.secret_key, email, code),
            expires_at,
        )
        return code

    def verify_one_time_code(self, email: str, code: str) -> bool:
        """Spend the code if it matches and is unexpired. A code verifies at most once."""
        email = normalize_email(email)
        digest = hash_one_time_code(self.settings.secret_key, email, code.strip())
        return self.store.consume_verification_code(email, digest, self.now())

    # ------------------------------------------------------------------
    # Reset tokens
    # ------------------------------------------------------------------

    def issue_reset_token(self, account: Account) -> str:
        """Give `account` a fresh reset token, superseding any earlier one."""
        token = new_reset_token()
        expiry = self.now() + timedelta(seconds=self.settings.reset_token_ttl_seconds)
        self.store.update_reset_token(account.email, token, expiry)
        logger.info("Reset token issued for %s (expires %s)", redact_email(account.email), expiry.isoformat())
        return token

    def consume_reset_token(self, token: str, new_password: str) -> None:
        """Set a new password using a reset token. Single use.

        Raises:
            ValidationFailed: token is not a UUID or the password is too short.
            TokenExpired:     an account holds the token but now >= expiry.
            TokenNotFound:    no account holds the token (including a second
                              call after a successful reset).
        """
        if not is_uuid(token):
            raise ValidationFailed("Invalid reset token")
        check_password_rules(new_password)

        now = self.now()
        holder = self.store.find_by_reset_token(token, now)
        hashed = self.hash_password(new_password)
        # The conditional UPDATE decides; the lookup above only names the account.
        if self.store.consume_reset_token(token, hashed, now):
            logger.info(
                "Password reset completed for %s", redact_email(holder.email) if holder else "unknown account"
            )
            return
        if self.store.holds_reset_token(token):
            raise TokenExpired(internal="reset token matched an account but is past its expiry")
        raise TokenNotFound(internal="no account holds this reset token")

    def initiate_password_reset(self, email: str) -> None:
        """Issue a reset token and email the link. Silent for unknown emails."""
        email = normalize_email(email)
        account = self.store.find_by_email(email)
        if account is None:
            logger.info("Password reset requested for unknown email %s", redact_email(email))
            return

        token = self.issue_reset_token(account)
        reset_url = f"{self.settings.base_url}/auth/reset-password?token={token}"
        try:
            self.notifier.send(
                NotificationKind.RESET_LINK,
                email,
                {
                    "reset_url": reset_url,
                    "first_name": account.first_name,
                    "last_name": account.last_name,
                    "support_email": self.settings.email_support_from,
                    "base_url": self.settings.base_url,
                },
            )
        except NotificationError as exc:
            logger.error("Reset link delivery to %s failed: %s", redact_email(email), exc)
            raise NotificationFailed(internal=str(exc)) from exc
