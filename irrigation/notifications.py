"""
User-visible, non-fatal notifications.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Deque, List
import logging

from .heartbeat import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    level: str
    title: str
    description: str
    created_at: datetime = field(default_factory=utcnow)


class Notifier:
    """
    Bounded queue of notifications for the front-end to show as toasts.
    Handlers get every notification as it is pushed.
    """

    def __init__(self, max_queue_size: int = 50):
        self._queue: Deque[Notification] = deque(maxlen=max_queue_size)
        self._handlers: List[Callable[[Notification], None]] = []

    def register_handler(self, handler: Callable[[Notification], None]) -> None:
        self._handlers.append(handler)

    def push(self, level: str, title: str, description: str) -> Notification:
        notification = Notification(level=level, title=title, description=description)
        self._queue.append(notification)
        for handler in self._handlers:
            try:
                handler(notification)
            except Exception:
                logger.exception("Notification handler failed")
        return notification

    def info(self, title: str, description: str) -> Notification:
        return self.push("info", title, description)

    def success(self, title: str, description: str) -> Notification:
        return self.push("success", title, description)

    def error(self, title: str, description: str) -> Notification:
        return self.push("error", title, description)

    def recent(self) -> List[Notification]:
        return list(self._queue)

    def drain(self) -> List[Notification]:
        """Return and clear everything queued so far."""
        items = list(self._queue)
        self._queue.clear()
        return items

    def __len__(self) -> int:
        return len(self._queue)
