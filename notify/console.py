"""
notify/console.py -- Development notifier that logs instead of sending.

Selected with NOTIFIER_BACKEND=log (the default). The one-time code and reset
URL are logged at DEBUG only, so a developer can sign in locally by running
with DEBUG logging while production logs never carry live credentials.
"""

from __future__ import annotations

import logging

from notify.base import NotificationKind, redact_email

logger = logging.getLogger("expressconnect.notify")


class LogNotifier:
    def send(self, kind: NotificationKind, to: str, template_data: dict) -> None:
        logger.info("Notification %s queued for %s (log backend, not delivered)", kind.value, redact_email(to))
        logger.debug("Notification %s template data: %r", kind.value, template_data)
