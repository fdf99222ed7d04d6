from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

Handler = Callable[[str, dict[str, Any]], None]

TOPIC_RESOURCE_CLAIMED = "resource.claimed"
TOPIC_SESSION_REVOKED = "session.revoked"
TOPIC_USER_ROLES_CHANGED = "user.roles_changed"


class NotificationBus:
    """
    In-process publish/subscribe. Transports (websockets, webhooks, ...) register
    handlers; the claim protocol and auth flows only ever call publish().

    Handler failures are logged and never reach the publisher: by the time we
    publish, the state transition has already been committed.
    """

    def __init__(self) -> None:
        self._handlers: defaultdict[str, list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        with self._lock:
            self._handlers[topic].append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers.get(topic, []):
                    self._handlers[topic].remove(handler)

        return unsubscribe

    def publish(self, topic: str, payload: dict[str, Any]) -> int:
        with self._lock:
            handlers = list(self._handlers.get(topic, []))
        delivered = 0
        for handler in handlers:
            try:
                handler(topic, payload)
                delivered += 1
            except Exception:
                logger.exception("Notification handler failed for topic=%s", topic)
        return delivered


_bus: NotificationBus | None = None
_lock = threading.Lock()


def get_notification_bus() -> NotificationBus:
    global _bus
    if _bus is not None:
        return _bus
    with _lock:
        if _bus is None:
            _bus = NotificationBus()
    return _bus


def reset_notification_bus() -> None:
    """
    Test helper: drop all subscribers.
    """

    global _bus
    with _lock:
        _bus = None
