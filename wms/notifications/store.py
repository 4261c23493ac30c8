"""
NotificationStore - in-memory notification list for one client session.

Newest first. Entries change only by being marked read and leave only by
a bulk clear; nothing is persisted across restarts.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from wms.notifications.models import NotificationEvent

logger = logging.getLogger(__name__)

Subscriber = Callable[[List[NotificationEvent]], None]


class NotificationStore:
    """Ordered notification list with read tracking."""

    def __init__(self):
        self._items: List[NotificationEvent] = []
        self._subscribers: List[Subscriber] = []

    @property
    def notifications(self) -> List[NotificationEvent]:
        """Snapshot, newest first."""
        return list(self._items)

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._items if not n.read)

    def __len__(self) -> int:
        return len(self._items)

    def get(self, notification_id: str) -> Optional[NotificationEvent]:
        for item in self._items:
            if item.id == notification_id:
                return item
        return None

    def append(self, event: NotificationEvent) -> None:
        """Add ``event`` at the front of the list."""
        self._items.insert(0, event)
        self._notify()

    def mark_read(self, notification_id: str) -> bool:
        """Mark one notification read. Returns False if the id is unknown."""
        item = self.get(notification_id)
        if item is None:
            return False
        if not item.read:
            item.read = True
            self._notify()
        return True

    def mark_all_read(self) -> int:
        """Mark everything read. Returns how many changed."""
        changed = 0
        for item in self._items:
            if not item.read:
                item.read = True
                changed += 1
        if changed:
            self._notify()
        return changed

    def clear(self) -> None:
        self._items.clear()
        self._notify()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Call ``callback`` with a snapshot after every change.

        Returns:
            A function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        if not self._subscribers:
            return
        snapshot = self.notifications
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("[NotificationStore] Subscriber failed")
