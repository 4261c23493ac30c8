"""Notification routing and session state."""

from wms.notifications.audio import SOUND_FILES, SoundPlayer, sound_url
from wms.notifications.context import NotificationContext
from wms.notifications.dispatcher import EventDispatcher, order_status_kind
from wms.notifications.messages import (
    ConnectionMessage,
    DocumentUploadedMessage,
    InboundMessage,
    NotificationMessage,
    NotificationPayload,
    OrderStatusChangeMessage,
    PingMessage,
    PongMessage,
    UnshippedItemsAuthorizedMessage,
    parse_message,
)
from wms.notifications.models import (
    KIND_TO_CUE,
    AudioCue,
    NotificationEvent,
    NotificationKind,
    Toast,
    cue_for,
)
from wms.notifications.store import NotificationStore

__all__ = [
    # Models
    "AudioCue",
    "KIND_TO_CUE",
    "NotificationEvent",
    "NotificationKind",
    "Toast",
    "cue_for",
    # Messages
    "InboundMessage",
    "PingMessage",
    "PongMessage",
    "ConnectionMessage",
    "NotificationMessage",
    "NotificationPayload",
    "DocumentUploadedMessage",
    "UnshippedItemsAuthorizedMessage",
    "OrderStatusChangeMessage",
    "parse_message",
    # Routing
    "EventDispatcher",
    "order_status_kind",
    "NotificationStore",
    "NotificationContext",
    # Audio
    "SOUND_FILES",
    "SoundPlayer",
    "sound_url",
]
