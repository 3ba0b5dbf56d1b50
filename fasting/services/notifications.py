"""
Notification channel for the fasting client.

Messages are logged and handed to any registered listeners (a CLI printer,
a desktop notifier, a test spy). A failing listener never breaks the caller.
"""
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class NotificationAction:
    label: str
    callback: Callable[[], None]

    def __call__(self):
        return self.callback()


@dataclass
class Notification:
    level: str
    message: str
    description: Optional[str] = None
    action: Optional[NotificationAction] = None


class Notifier:
    LEVELS = {
        'success': logging.INFO,
        'info': logging.INFO,
        'error': logging.ERROR,
    }

    def __init__(self):
        self._listeners: List[Callable[[Notification], None]] = []

    def subscribe(self, listener: Callable[[Notification], None]) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[Notification], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def success(self, message, description=None, action=None) -> Notification:
        return self._emit('success', message, description, action)

    def info(self, message, description=None, action=None) -> Notification:
        return self._emit('info', message, description, action)

    def error(self, message, description=None, action=None) -> Notification:
        return self._emit('error', message, description, action)

    def _emit(self, level, message, description, action) -> Notification:
        notification = Notification(level, message, description, action)
        text = f"{message}: {description}" if description else message
        logger.log(self.LEVELS[level], text)

        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception(f"Notification listener {listener!r} failed")
        return notification
