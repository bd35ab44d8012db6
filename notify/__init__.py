"""notify/ -- Outbound email boundary for Express Connect.

Layer rule: notify/ imports only stdlib, third-party libraries and core/.
auth/ depends on notify.base for the Notifier protocol; the concrete backend
is chosen once by build_notifier() at the composition root.
"""

from core.config import Settings
from notify.base import NotificationError, NotificationKind, Notifier
from notify.console import LogNotifier
from notify.resend import ResendNotifier


def build_notifier(settings: Settings) -> Notifier:
    if settings.notifier_backend == "resend":
        return ResendNotifier(settings)
    return LogNotifier()


__all__ = ["NotificationError", "NotificationKind", "Notifier", "LogNotifier", "ResendNotifier", "build_notifier"]
