"""
EventDispatcher - turns inbound frames into notifications.

For each business message the dispatcher builds a NotificationEvent,
prepends it to the store, raises a toast and selects an audio cue. The
kind/cue choice is a static table. A bad frame or a failing sink is
logged and dropped; nothing here can close the channel. Server pings
are answered with a pong through ``reply``.
"""

from __future__ import annotations

import itertools
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple, Union

from wms.core.exceptions import MessageParseError
from wms.notifications.audio import SoundPlayer
from wms.notifications.messages import (
    DocumentUploadedMessage,
    InboundMessage,
    NotificationMessage,
    OrderStatusChangeMessage,
    PingMessage,
    UnshippedItemsAuthorizedMessage,
    parse_message,
)
from wms.notifications.models import (
    AudioCue,
    NotificationEvent,
    NotificationKind,
    Toast,
    cue_for,
)
from wms.notifications.store import NotificationStore

logger = logging.getLogger(__name__)

Routed = Tuple[NotificationEvent, Optional[AudioCue]]


def order_status_kind(
    new_status: str, previous_status: Optional[str] = None
) -> Tuple[NotificationKind, AudioCue]:
    """Kind and cue for an order status transition."""
    if new_status == "shipped":
        return NotificationKind.SUCCESS, AudioCue.SUCCESS
    if new_status == "cancelled":
        return NotificationKind.ERROR, AudioCue.ERROR
    if new_status == "picked":
        return NotificationKind.INFO, AudioCue.SUCCESS
    if new_status == "pending" and previous_status == "picked":
        return NotificationKind.WARNING, AudioCue.WARNING
    return NotificationKind.INFO, AudioCue.SUCCESS


class EventDispatcher:
    """Routes parsed frames to the store, the toast surface and the audio player."""

    def __init__(
        self,
        store: NotificationStore,
        toast: Optional[Callable[[Toast], None]] = None,
        player: Optional[SoundPlayer] = None,
        clock: Callable[[], float] = time.time,
        reply: Optional[Callable[[Dict[str, Any]], bool]] = None,
    ):
        """
        Args:
            store: Receives every new notification
            toast: UI toast surface (optional)
            player: Audio cue player (optional)
            clock: Epoch seconds, used for generated ids
            reply: Sends a frame back to the server; answers server pings
        """
        self.store = store
        self.toast = toast
        self.player = player
        self.reply = reply
        self._clock = clock
        self._seq = itertools.count(1)
        self._handlers: Dict[type, Callable[[Any], Routed]] = {
            NotificationMessage: self._route_notification,
            OrderStatusChangeMessage: self._route_order_status,
            DocumentUploadedMessage: self._route_document_uploaded,
            UnshippedItemsAuthorizedMessage: self._route_unshipped_authorized,
        }
        self._stats = {"dispatched": 0, "ignored": 0, "parse_errors": 0}

    @property
    def stats(self) -> Dict[str, int]:
        return self._stats.copy()

    def dispatch(self, raw: Union[str, bytes]) -> Optional[NotificationEvent]:
        """
        Handle one inbound frame.

        Returns:
            The notification created, or None for heartbeats, unknown types
            and malformed frames
        """
        try:
            message = parse_message(raw)
        except MessageParseError as e:
            self._stats["parse_errors"] += 1
            logger.warning("[Dispatcher] Error parsing message: %s", e)
            return None

        if message is None:
            self._stats["ignored"] += 1
            logger.debug("[Dispatcher] Ignoring unknown message type")
            return None

        return self.handle(message)

    def handle(self, message: InboundMessage) -> Optional[NotificationEvent]:
        if isinstance(message, PingMessage):
            self._answer_ping(message)
            return None

        handler = self._handlers.get(type(message))
        if handler is None:
            # pong, connection greeting
            return None

        event, cue = handler(message)
        self._stats["dispatched"] += 1
        self.store.append(event)
        self._show_toast(event)
        if cue is not None:
            self._play(cue)
        return event

    # ------------------------------------------------------------------
    # Routing table
    # ------------------------------------------------------------------

    def _route_notification(self, message: NotificationMessage) -> Routed:
        payload = message.notification
        event = NotificationEvent(
            id=payload.id or uuid.uuid4().hex[:13],
            title=payload.title,
            message=payload.message,
            kind=payload.kind,
            created_at=payload.timestamp or self._now(),
            read=payload.read,
            order_id=payload.order_id,
            order_number=payload.order_number,
            metadata=dict(payload.model_extra or {}),
        )
        # Plain info pushes are silent
        cue = None if payload.kind is NotificationKind.INFO else cue_for(payload.kind)
        return event, cue

    def _route_order_status(self, message: OrderStatusChangeMessage) -> Routed:
        kind, cue = order_status_kind(message.new_status, message.previous_status)
        event = NotificationEvent(
            id=self._event_id(f"order-{message.order_id}"),
            title="Order Status Updated",
            message=f"Order {message.order_number} changed to {message.new_status}",
            kind=kind,
            created_at=self._now(),
            order_id=message.order_id,
            order_number=message.order_number,
            metadata={
                "previousStatus": message.previous_status,
                "newStatus": message.new_status,
            },
        )
        return event, cue

    def _route_document_uploaded(self, message: DocumentUploadedMessage) -> Routed:
        document = message.document_type or "Shipping"
        event = NotificationEvent(
            id=self._event_id(f"document-{message.order_id}"),
            title="Document Uploaded",
            message=f"{document} document uploaded for order {message.order_number}",
            kind=NotificationKind.SUCCESS,
            created_at=self._now(),
            order_id=message.order_id,
            order_number=message.order_number,
            metadata={"documentType": message.document_type},
        )
        return event, cue_for(event.kind)

    def _route_unshipped_authorized(
        self, message: UnshippedItemsAuthorizedMessage
    ) -> Routed:
        who = f" by {message.authorized_by_role}" if message.authorized_by_role else ""
        event = NotificationEvent(
            id=self._event_id("unshipped"),
            title="Unshipped Items Authorized",
            message=f"{message.item_count} unshipped item(s) authorized{who}",
            kind=NotificationKind.INFO,
            created_at=self._now(),
            metadata={
                "itemCount": message.item_count,
                "authorizedById": message.authorized_by_id,
                "authorizedByRole": message.authorized_by_role,
            },
        )
        return event, cue_for(event.kind)

    # ------------------------------------------------------------------
    # Sinks
    # ------------------------------------------------------------------

    def _show_toast(self, event: NotificationEvent) -> None:
        if self.toast is None:
            return
        try:
            self.toast(Toast.for_event(event))
        except Exception:
            logger.exception("[Dispatcher] Toast surface failed")

    def _play(self, cue: AudioCue) -> None:
        if self.player is None:
            return
        try:
            self.player.play(cue)
        except Exception:
            logger.exception("[Dispatcher] Audio player failed")

    def _answer_ping(self, message: PingMessage) -> None:
        if self.reply is None:
            return
        try:
            self.reply({"type": "pong", "timestamp": message.timestamp})
        except Exception:
            logger.exception("[Dispatcher] Pong reply failed")

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def _event_id(self, prefix: str) -> str:
        # Millisecond timestamp plus a sequence number keeps ids unique
        return f"{prefix}-{int(self._clock() * 1000)}-{next(self._seq)}"
