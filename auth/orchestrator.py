"""
auth/orchestrator.py -- Authentication Orchestrator.

One sign-in contract, two credential variants:

    claims = orchestrator.authenticate(EmailCode(email, code))
    claims = orchestrator.authenticate(Password(email, password))

The variant is an explicit tagged union dispatched with isinstance. Every
successful path ends in the same sign-in pre-check (the account must exist in
the system of record; identities are never auto-provisioned) followed by
build_claims().

Email-code flow:
  request_email_code(email) opens a verification window and mails the code.
  Once delivery succeeds the account's password is wiped (hash NULL,
  password_set false) so a stale password cannot sidestep the code channel.
  The user must create a new password to use the password method again.

First password:
  create_password() only fills an empty password slot. An account that
  already has one must go through the emailed reset link, so knowing an
  email is not enough to replace its password. A slot emptied by an email
  code request can still be filled without proof of the mailbox.

Password flow:
  Unknown email and wrong password both raise InvalidCredentials with the same
  public message; the difference is logged only. bcrypt runs against a dummy
  hash for unknown emails so timing does not reveal existence either [C1].
  check_account_status() is deliberately more informative: the sign-in page
  uses it to choose between "enter password" and "create password".

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlencode

from auth.credentials import CredentialService, check_password_rules
from auth.errors import (
    AccountNotFound,
    InvalidCode,
    InvalidCredentials,
    NoPasswordConfigured,
    NotificationFailed,
    PasswordAlreadySet,
    ValidationFailed,
)
from auth.models import Account, AccountStatus, SessionClaims, normalize_email
from auth.store import AccountStore
from auth.tokens import burn_password_check
from core.config import Settings
from notify.base import NotificationError, NotificationKind, Notifier, redact_email

logger = logging.getLogger("expressconnect.auth")


# ---------------------------------------------------------------------------
# Credential variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EmailCode:
    email: str
    code: str


@dataclass(frozen=True)
class Password:
    email: str
    password: str


Credentials = EmailCode | Password


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class AuthOrchestrator:
    def __init__(
        self,
        store: AccountStore,
        credentials: CredentialService,
        notifier: Notifier,
        settings: Settings,
    ) -> None:
        self.store = store
        self.credentials = credentials
        self.notifier = notifier
        self.settings = settings

    # ------------------------------------------------------------------
    # Sign-in contract
    # ------------------------------------------------------------------

    def authenticate(self, credentials: Credentials) -> SessionClaims:
        """Verify one credential variant and return the session claims.

        Raises an AuthError subclass on any failure.
        """
        if isinstance(credentials, EmailCode):
            account = self._verify_email_code(credentials)
        elif isinstance(credentials, Password):
            account = self._verify_password(credentials)
        else:
            raise TypeError(f"Unsupported credential type: {type(credentials).__name__}")
        logger.info("Sign-in succeeded for %s via %s", redact_email(account.email), type(credentials).__name__)
        return self.build_claims(account)

    def _verify_email_code(self, credentials: EmailCode) -> Account:
        email = normalize_email(credentials.email)
        if not self.credentials.verify_one_time_code(email, credentials.code):
            logger.info("Email code rejected for %s", redact_email(email))
            raise InvalidCode()
        return self._require_account(email)

    def _verify_password(self, credentials: Password) -> Account:
        email = normalize_email(credentials.email)
        account = self.store.find_by_email(email)
        if account is None:
            burn_password_check(credentials.password)  # [C1]
            logger.info("Password sign-in for unknown email %s", redact_email(email))
            raise InvalidCredentials(internal="unknown email")
        if not account.has_password:
            raise NoPasswordConfigured()
        if not self.credentials.verify_password(credentials.password, account.hashed_password):
            logger.info("Password sign-in with wrong password for %s", redact_email(email))
            raise InvalidCredentials(internal="wrong password")
        return self._require_account(email)

    def _require_account(self, email: str) -> Account:
        """Sign-in pre-check: a verified identity must still have an Account row."""
        account = self.store.find_by_email(email)
        if account is None:
            logger.warning("Sign-in rejected: %s verified but not in the account table", redact_email(email))
            raise AccountNotFound()
        return account

    # ------------------------------------------------------------------
    # Email-code step 1
    # ------------------------------------------------------------------

    def request_email_code(self, email: str) -> None:
        """Mail a fresh sign-in code to a known account; do nothing for unknown ones.

        Raises NotificationFailed if delivery fails; the password is left intact
        in that case.
        """
        email = normalize_email(email)
        account = self.store.find_by_email(email)
        if account is None:
            logger.info("Email code requested for unknown email %s", redact_email(email))
            return

        code = self.credentials.issue_one_time_code(email)
        kind = NotificationKind(self.settings.email_code_delivery)
        try:
            self.notifier.send(
                kind,
                email,
                {
                    "code": code,
                    "url": self.magic_link_url(email, code),
                    "first_name": account.first_name,
                    "last_name": account.last_name,
                    "support_email": self.settings.email_support_from,
                    "base_url": self.settings.base_url,
                },
            )
        except NotificationError as exc:
            logger.error("Sign-in code delivery to %s failed: %s", redact_email(email), exc)
            raise NotificationFailed(internal=str(exc)) from exc

        self.store.update_otp_invalidation(email)
        logger.info("Sign-in code sent to %s; password channel disabled", redact_email(email))

    def magic_link_url(self, email: str, code: str) -> str:
        query = urlencode({"email": email, "token": code})
        return f"{self.settings.base_url}/api/auth/callback/email?{query}"

    # ------------------------------------------------------------------
    # Status check and first-time password
    # ------------------------------------------------------------------

    def check_account_status(self, email: str) -> AccountStatus:
        """Report whether an account exists and has a usable password.

        Intentionally discloses existence; the sign-in page routes on it.
        """
        account = self.store.find_by_email(email)
        if account is None:
            return AccountStatus(exists=False)
        return AccountStatus(exists=True, has_password=bool(account.hashed_password))

    def create_password(self, email: str, password: str, confirm_password: str) -> SessionClaims:
        """Store a first password for an existing account, then sign in with it.

        Raises PasswordAlreadySet if the account has a usable password.
        """
        if password != confirm_password:
            raise ValidationFailed("Passwords do not match")
        check_password_rules(password)

        email = normalize_email(email)
        account = self.store.find_by_email(email)
        if account is None:
            raise AccountNotFound()
        if account.has_password:
            raise PasswordAlreadySet(internal=f"create_password refused for {redact_email(email)}")
        if not self.store.update_password(email, self.credentials.hash_password(password)):
            raise AccountNotFound()
        logger.info("Password created for %s", redact_email(email))
        return self.authenticate(Password(email, password))

    # ------------------------------------------------------------------
    # Session construction
    # ------------------------------------------------------------------

    def build_claims(self, account: Account) -> SessionClaims:
        return SessionClaims(
            id=account.id or "",
            role=account.role,
            host_id=account.host_id or "",
            attendee_id=account.attendee_company_id or "",
            name=(account.first_name or "").strip(),
            email=account.email,
        )

    def refresh_claims(self, claims: SessionClaims) -> SessionClaims | None:
        """Rebuild claims from the current Account row; None if it is gone."""
        account = self.store.find_by_id(claims.id)
        if account is None:
            return None
        return self.build_claims(account)
