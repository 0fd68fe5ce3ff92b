"""Change notifications published after a transaction commits.

Publication is best effort: a failing publisher is logged and never fails the
user operation.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import List, Optional, Protocol

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    TASKS_CHANGED = "TASKS_CHANGED"
    RECURRING_CHANGED = "RECURRING_CHANGED"


@dataclass(frozen=True)
class ChangeEvent:
    user_id: int
    type: ChangeType
    date: Optional[date] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "date": self.date.isoformat() if self.date else None,
        }


class NotificationPublisher(Protocol):
    def notify_tasks_changed(self, user_id: int, day: date) -> None: ...

    def notify_recurring_changed(self, user_id: int) -> None: ...


class LoggingNotificationPublisher:
    """Default publisher: writes events to the log (no message bus wired in)."""

    def notify_tasks_changed(self, user_id: int, day: date) -> None:
        logger.info(f"TASKS_CHANGED user={user_id} date={day.isoformat()}")

    def notify_recurring_changed(self, user_id: int) -> None:
        logger.info(f"RECURRING_CHANGED user={user_id}")


class RecordingNotificationPublisher:
    """Keeps every event in memory; used by tests."""

    def __init__(self):
        self._lock = threading.Lock()
        self.events: List[ChangeEvent] = []

    def notify_tasks_changed(self, user_id: int, day: date) -> None:
        with self._lock:
            self.events.append(ChangeEvent(user_id=user_id, type=ChangeType.TASKS_CHANGED, date=day))

    def notify_recurring_changed(self, user_id: int) -> None:
        with self._lock:
            self.events.append(ChangeEvent(user_id=user_id, type=ChangeType.RECURRING_CHANGED))

    def clear(self) -> None:
        with self._lock:
            self.events.clear()


def publish(publisher: NotificationPublisher, event: ChangeEvent) -> None:
    """Deliver one event, logging (not raising) publisher failures."""
    try:
        if event.type == ChangeType.TASKS_CHANGED:
            publisher.notify_tasks_changed(event.user_id, event.date)
        else:
            publisher.notify_recurring_changed(event.user_id)
    except Exception as e:
        logger.error(
            f"Failed to publish {event.type.value} for user {event.user_id}: {type(e).__name__}: {str(e)}"
        )
