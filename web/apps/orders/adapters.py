"""In-process stub adapter for the notification port.

The stub keeps sent notifications in memory instead of calling the
notifications service. It is used in tests and local development where
deterministic behavior is useful and no external service is running.
"""

import logging
import threading
from dataclasses import dataclass
from typing import List, Optional

from .domain import NotificationPort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SentNotification:
    user_id: str
    title: str
    message: str
    type: str
    order_id: Optional[str]


class NotificationStub(NotificationPort):
    """Stub implementation of ``NotificationPort``.

    Records every notification in ``sent`` and logs it.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.sent: List[SentNotification] = []

    def notify(self, user_id, title, message, type, order_id=None) -> None:
        with self._lock:
            self.sent.append(SentNotification(user_id, title, message, type, order_id))
        logger.info("notification recorded", extra={"user_id": user_id, "notification_type": type})

    def clear(self) -> None:
        with self._lock:
            self.sent.clear()
