"""User-facing notifications (snackbar messages). Fire-and-forget."""
from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class Notifier:
    def success(self, message: str) -> None:
        raise NotImplementedError

    def error(self, message: str) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    def success(self, message: str) -> None:
        logger.info("notify_success", extra={"notification": message})

    def error(self, message: str) -> None:
        logger.info("notify_error", extra={"notification": message})


def notify(notifier: Notifier | None, message: str, *, ok: bool) -> None:
    """Deliver a message; a failing notifier never affects the caller."""
    if notifier is None:
        return
    try:
        if ok:
            notifier.success(message)
        else:
            notifier.error(message)
    except Exception:
        logger.exception("notification_failed", extra={"notification": message})
