"""
notify/resend.py -- Notifier backed by the Resend HTTP email API.

One POST per notification through a module-level requests.Session (connection
pooling), with a bounded timeout from Settings.notifier_timeout_seconds. Any
transport error, non-2xx status, or error body is raised as NotificationError.
There is no retry: a transient failure surfaces to the caller, who decides
whether the user should try again.

The body is plain text assembled from the template data. HTML templates are
owned by the mail-design side of the product and are not part of this service.
"""

from __future__ import annotations

import logging
import uuid

import requests

from core.config import Settings
from notify.base import NotificationError, NotificationKind, redact_email

logger = logging.getLogger("expressconnect.notify")

RESEND_API = "https://api.resend.com/emails"

_SUBJECTS: dict[NotificationKind, str] = {
    NotificationKind.OTP: "Your {brand} Sign-in Code",
    NotificationKind.MAGIC_LINK: "Login to Express Connect",
    NotificationKind.RESET_LINK: "Reset Your Password",
}

_session = requests.Session()
_session.max_redirects = 3


def _greeting(data: dict) -> str:
    name = " ".join(p for p in (data.get("first_name", ""), data.get("last_name", "")) if p).strip()
    return f"Hello {name}," if name else "Hello,"


def render_text(kind: NotificationKind, data: dict) -> str:
    """Build the plain-text body for a notification."""
    lines = [_greeting(data), ""]
    if kind is NotificationKind.OTP:
        lines.append(f"Your sign-in code is: {data['code']}")
        if data.get("url"):
            lines += ["", f"Or sign in directly: {data['url']}"]
    elif kind is NotificationKind.MAGIC_LINK:
        lines.append(f"Sign in to Express Connect: {data['url']}")
    else:
        lines += [
            f"Reset your password here: {data['reset_url']}",
            "",
            "This link expires in 15 minutes. If you did not request a reset, ignore this email.",
        ]
    if data.get("support_email"):
        lines += ["", f"Questions? Contact {data['support_email']}."]
    return "\n".join(lines)


class ResendNotifier:
    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.resend_api_key
        self._sender = f"{settings.email_from_name} <{settings.email_from}>"
        self._brand = settings.email_from_name
        self._timeout = settings.notifier_timeout_seconds

    def send(self, kind: NotificationKind, to: str, template_data: dict) -> None:
        body = {
            "from": self._sender,
            "to": [to],
            "subject": _SUBJECTS[kind].format(brand=self._brand),
            "text": render_text(kind, template_data),
            "headers": {"Message-ID": f"<{uuid.uuid4()}>"},
        }
        try:
            resp = _session.post(
                RESEND_API,
                json=body,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=self._timeout,
            )
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as exc:
            raise NotificationError(f"Resend request failed: {exc}") from exc
        except ValueError as exc:
            raise NotificationError("Resend returned a non-JSON body") from exc

        if not isinstance(payload, dict) or payload.get("error"):
            raise NotificationError(f"Resend rejected the message: {payload!r}")
        logger.info("Notification %s sent to %s (id=%s)", kind.value, redact_email(to), payload.get("id"))
