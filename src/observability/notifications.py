"""
User-visible notifications.

The host shows these as toasts; here they are recorded in order and mirrored
to the module logger at the matching level.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable
import logging

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Notification:
    """A single notice shown to the local user."""
    level: NotificationLevel
    message: str
    permanent: bool = False  # Stays until dismissed
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return f"[{self.level.value.upper()}] {self.message}"


class NotificationSink:
    """Collects notices for the local user."""

    def __init__(self):
        self.notifications: list[Notification] = []
        self._subscribers: list[Callable[[Notification], None]] = []

    def subscribe(self, callback: Callable[[Notification], None]) -> None:
        self._subscribers.append(callback)

    def info(self, message: str, permanent: bool = False) -> Notification:
        logger.info(message)
        return self._post(NotificationLevel.INFO, message, permanent)

    def warn(self, message: str, permanent: bool = False) -> Notification:
        logger.warning(message)
        return self._post(NotificationLevel.WARNING, message, permanent)

    def error(self, message: str, permanent: bool = False) -> Notification:
        logger.error(message)
        return self._post(NotificationLevel.ERROR, message, permanent)

    def by_level(self, level: NotificationLevel) -> list[Notification]:
        return [n for n in self.notifications if n.level == level]

    def clear(self) -> None:
        self.notifications = []

    def _post(self, level: NotificationLevel, message: str, permanent: bool) -> Notification:
        notification = Notification(level=level, message=message, permanent=permanent)
        self.notifications.append(notification)
        for callback in self._subscribers:
            try:
                callback(notification)
            except Exception as e:
                logger.warning(f"Notification subscriber error: {e}")
        return notification
