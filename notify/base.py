"""
notify/base.py -- The boundary the authentication core sends email through.

The core never renders templates or talks to a mail provider. It calls
Notifier.send(kind, to, template_data) with plain substitution values and
treats any NotificationError as "request failed". Nothing here retries.

Template data keys by kind:
  otp         -- code, url, first_name, last_name, support_email, base_url
  magic-link  -- same as otp; the url is the primary call to action
  reset-link  -- reset_url, first_name, last_name, support_email, base_url
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol


class NotificationKind(str, Enum):
    OTP = "otp"
    MAGIC_LINK = "magic-link"
    RESET_LINK = "reset-link"


class NotificationError(Exception):
    """Delivery failed. The message is for operators, never for clients."""


class Notifier(Protocol):
    def send(self, kind: NotificationKind, to: str, template_data: dict) -> None: ...


def redact_email(email: str) -> str:
    """Redact an email address for logging to avoid PII leakage."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"
