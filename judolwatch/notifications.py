"""User-facing notifications for completed and failed operations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .errors import AuthError, JudolWatchError, NetworkError, ServerError, ValidationError

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    title: str
    message: str = ""

    def __str__(self) -> str:
        if self.message:
            return f"[{self.level.value}] {self.title}: {self.message}"
        return f"[{self.level.value}] {self.title}"


_LOG_LEVELS = {
    NotificationLevel.SUCCESS: logging.INFO,
    NotificationLevel.INFO: logging.INFO,
    NotificationLevel.WARNING: logging.WARNING,
    NotificationLevel.ERROR: logging.ERROR,
}


def describe_error(exc: BaseException) -> str:
    """Human-readable message, preferring server-supplied detail."""
    if isinstance(exc, ServerError):
        return exc.detail or exc.message
    if isinstance(exc, AuthError):
        return str(exc) or "Session expired, please log in again"
    if isinstance(exc, NetworkError):
        return str(exc) or "Could not reach the server"
    return str(exc) or type(exc).__name__


class Notifier:
    """Logs notifications and keeps them for the caller to display."""

    def __init__(self, sink: Optional[Callable[[Notification], None]] = None):
        self.sink = sink
        self.history: list[Notification] = []

    def notify(self, level: NotificationLevel, title: str, message: str = "") -> Notification:
        notification = Notification(level=level, title=title, message=message)
        self.history.append(notification)
        logger.log(_LOG_LEVELS[level], "%s", notification)
        if self.sink is not None:
            self.sink(notification)
        return notification

    def success(self, title: str, message: str = "") -> Notification:
        return self.notify(NotificationLevel.SUCCESS, title, message)

    def info(self, title: str, message: str = "") -> Notification:
        return self.notify(NotificationLevel.INFO, title, message)

    def failure(self, title: str, exc: JudolWatchError) -> Notification:
        level = NotificationLevel.WARNING if isinstance(exc, ValidationError) else NotificationLevel.ERROR
        return self.notify(level, title, describe_error(exc))

    def drain(self) -> list[Notification]:
        items, self.history = self.history, []
        return items
