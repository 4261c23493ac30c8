"""
Runtime connectivity and visibility signals.

In a browser these come from ``online``/``offline`` and
``visibilitychange`` events. Here the embedding application (a desktop
shell, a kiosk supervisor, a network probe) reports transitions through
``set_online`` and ``set_visible``; listeners only fire on real changes.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class RuntimeEvent(str, Enum):
    """Runtime transitions the channel can react to."""

    ONLINE = "online"
    OFFLINE = "offline"
    VISIBLE = "visible"
    HIDDEN = "hidden"


class RuntimeSignals:
    """Observable network/visibility state."""

    def __init__(self, online: bool = True, visible: bool = True):
        self._online = online
        self._visible = visible
        self._listeners: Dict[RuntimeEvent, List[Listener]] = {e: [] for e in RuntimeEvent}

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def is_visible(self) -> bool:
        return self._visible

    def add_listener(self, event: RuntimeEvent, listener: Listener) -> None:
        """Register ``listener`` for ``event`` (duplicates are ignored)."""
        listeners = self._listeners[RuntimeEvent(event)]
        if listener not in listeners:
            listeners.append(listener)

    def remove_listener(self, event: RuntimeEvent, listener: Listener) -> None:
        listeners = self._listeners[RuntimeEvent(event)]
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: Optional[RuntimeEvent] = None) -> int:
        """Number of attached listeners, for one event or all of them."""
        if event is not None:
            return len(self._listeners[RuntimeEvent(event)])
        return sum(len(v) for v in self._listeners.values())

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        self._emit(RuntimeEvent.ONLINE if online else RuntimeEvent.OFFLINE)

    def set_visible(self, visible: bool) -> None:
        if visible == self._visible:
            return
        self._visible = visible
        self._emit(RuntimeEvent.VISIBLE if visible else RuntimeEvent.HIDDEN)

    def _emit(self, event: RuntimeEvent) -> None:
        logger.debug("[Signals] %s", event.value)
        # Copy: a listener may detach itself
        for listener in list(self._listeners[event]):
            try:
                listener()
            except Exception:
                logger.exception("[Signals] Listener for %s failed", event.value)
