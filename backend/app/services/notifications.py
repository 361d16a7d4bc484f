"""
Notification emitter: durable write inside the state-changing transaction, then a
best-effort push to live subscribers after commit.

Delivery to subscribers is at-most-once and never blocks the caller: a subscriber that
raises is logged and skipped, and a user with no subscriber simply gets nothing pushed
(the row is still in the notifications table for the REST API).
"""
import logging
import threading
from typing import Any, Callable, Iterable

from sqlalchemy.orm import Session

from app.core.clock import isoformat
from app.core.constants import Severity
from app.models.notification import Notification

logger = logging.getLogger(__name__)

Subscriber = Callable[[dict[str, Any]], None]


def serialize_notification(row: Notification) -> dict[str, Any]:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "title": row.title,
        "message": row.message,
        "type": row.severity.value if isinstance(row.severity, Severity) else row.severity,
        "read": bool(row.is_read),
        "created_at": isoformat(row.created_at),
    }


class NotificationBus:
    """In-process fan-out of committed notifications to per-user subscribers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Subscriber]] = {}

    def subscribe(self, user_id: str, callback: Subscriber) -> Callable[[], None]:
        """Register callback for user_id; returns an unsubscribe function."""
        with self._lock:
            self._subscribers.setdefault(user_id, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(user_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(user_id, None)

        return unsubscribe

    def subscriber_count(self, user_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(user_id, []))

    def publish(self, user_id: str, payload: dict[str, Any]) -> int:
        """Push payload to every subscriber of user_id. Returns count delivered."""
        with self._lock:
            callbacks = list(self._subscribers.get(user_id, []))
        if not callbacks:
            logger.debug("No live subscriber for user %s; notification %s not pushed", user_id, payload.get("id"))
            return 0
        delivered = 0
        for callback in callbacks:
            try:
                callback(payload)
                delivered += 1
            except Exception as e:
                logger.warning("Dropping notification %s for user %s: %s", payload.get("id"), user_id, e)
        return delivered


bus = NotificationBus()


def record(
    db: Session,
    user_id: str,
    title: str,
    message: str,
    severity: Severity = Severity.INFO,
) -> Notification:
    """Add a notification row to the current transaction (flushed so it has an id)."""
    row = Notification(user_id=user_id, title=title, message=message, severity=severity, is_read=False)
    db.add(row)
    db.flush()
    return row


def publish(rows: Iterable[Notification]) -> None:
    """Push rows to live subscribers. Call only after the transaction that wrote them committed."""
    for row in rows:
        bus.publish(row.user_id, serialize_notification(row))
