from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List

logger = logging.getLogger(__name__)

EXPENSES = "expenses"
SETTINGS = "settings"
MILESTONES = "milestones"


@dataclass(frozen=True)
class ChangeEvent:
    topic: str
    user_id: int


Subscriber = Callable[[ChangeEvent], None]


class ChangeNotifier:
    """Tell interested parties that a user's stored data changed.

    Stores publish after a successful write; subscribers re-fetch whatever
    they cache. Delivery is synchronous and in subscription order.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        logger.debug("Publishing %s change for user %s to %d subscriber(s)", event.topic, event.user_id, len(subscribers))
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber %r failed on %s", callback, event)
