"""User-visible notifications.

The UI collaborator implements :class:`Notifier`. Errors are turned into a
notification exactly once, by the component that owns the failing operation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from pycarfeed.exceptions import (
    CarFeedError,
    CarFeedPermissionError,
    CarFeedProtocolError,
)

_logger = logging.getLogger(__name__)


class NotificationLevel(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    title: str
    message: str
    error: CarFeedError | None = None


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None:
        ...


class LoggingNotifier:
    """Default notifier for headless use: writes notifications to the log."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or _logger

    def notify(self, notification: Notification) -> None:
        level = logging.WARNING if notification.level == NotificationLevel.ERROR else logging.INFO
        self._logger.log(level, "%s: %s", notification.title, notification.message)


def notification_for_error(
    error: CarFeedError,
    *,
    context: str = "",
    title: str | None = None,
) -> Notification:
    """Map an error to the notification the user sees."""
    if title is None:
        title = "Permission Required" if isinstance(error, CarFeedPermissionError) else "Error"

    message = str(error)
    if context and not isinstance(error, CarFeedPermissionError):
        message = f"{context}: {message}"
    return Notification(level=NotificationLevel.ERROR, title=title, message=message, error=error)


def report_error(
    notifier: Notifier,
    error: CarFeedError,
    *,
    context: str = "",
    title: str | None = None,
) -> None:
    """Log *error* and hand it to *notifier* once.

    Protocol errors point at a client/service format mismatch and are logged
    at WARNING on their own; everything else the user can retry.
    """
    if isinstance(error, CarFeedProtocolError):
        _logger.warning("Protocol mismatch%s: %s", f" ({context})" if context else "", error)
    else:
        _logger.info("%s failed: %s", context or type(error).__name__, error)

    try:
        notifier.notify(notification_for_error(error, context=context, title=title))
    except Exception:
        _logger.warning("Notifier failed for %s", type(error).__name__, exc_info=True)


def report_success(notifier: Notifier, title: str, message: str) -> None:
    try:
        notifier.notify(Notification(level=NotificationLevel.SUCCESS, title=title, message=message))
    except Exception:
        _logger.warning("Notifier failed for success notification", exc_info=True)
