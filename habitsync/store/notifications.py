"""Transient user-facing notifications."""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    """One message shown briefly to the user."""

    level: str  # "success" or "error"
    message: str
    created_at: datetime = field(default_factory=datetime.now)


NotificationListener = Callable[[Notification], None]


class Notifier:
    """Collects notifications and forwards them to whoever displays them."""

    def __init__(self, history: int = 50):
        self._recent: deque[Notification] = deque(maxlen=history)
        self._listeners: list[NotificationListener] = []

    def subscribe(self, listener: NotificationListener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def success(self, message: str):
        self._publish(Notification("success", message))

    def error(self, message: str):
        self._publish(Notification("error", message))

    def recent(self) -> list[Notification]:
        """Notifications still held, oldest first."""
        return list(self._recent)

    def drain(self) -> list[Notification]:
        """Return held notifications and forget them."""
        notifications = list(self._recent)
        self._recent.clear()
        return notifications

    def _publish(self, notification: Notification):
        if notification.level == "error":
            logger.warning(f"Notify: {notification.message}")
        else:
            logger.info(f"Notify: {notification.message}")

        self._recent.append(notification)
        for listener in list(self._listeners):
            listener(notification)
