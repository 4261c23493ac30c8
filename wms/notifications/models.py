"""Notification data structures shared by the dispatcher, store and UI sinks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union


class NotificationKind(str, Enum):
    """Severity shown to the operator."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class AudioCue(str, Enum):
    """Sound categories; there is no dedicated info tone."""

    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


# Static mapping; info shares the success tone
KIND_TO_CUE: Dict[NotificationKind, AudioCue] = {
    NotificationKind.SUCCESS: AudioCue.SUCCESS,
    NotificationKind.INFO: AudioCue.SUCCESS,
    NotificationKind.WARNING: AudioCue.WARNING,
    NotificationKind.ERROR: AudioCue.ERROR,
}


def cue_for(kind: NotificationKind) -> AudioCue:
    return KIND_TO_CUE[kind]


@dataclass
class NotificationEvent:
    """A notification held in the client session."""

    id: str
    title: str
    message: str
    kind: NotificationKind = NotificationKind.INFO
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    read: bool = False
    order_id: Optional[Union[int, str]] = None
    order_number: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire/UI shape."""
        data = {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "type": self.kind.value,
            "timestamp": self.created_at.isoformat(),
            "read": self.read,
        }
        if self.order_id is not None:
            data["orderId"] = self.order_id
        if self.order_number is not None:
            data["orderNumber"] = self.order_number
        data.update(self.metadata)
        return data


@dataclass(frozen=True)
class Toast:
    """Transient UI message."""

    title: str
    description: str
    variant: str = "default"

    @classmethod
    def for_event(cls, event: NotificationEvent) -> "Toast":
        variant = "destructive" if event.kind is NotificationKind.ERROR else "default"
        return cls(title=event.title, description=event.message, variant=variant)
