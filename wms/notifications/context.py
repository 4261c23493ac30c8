"""
NotificationContext - the application-lifetime owner of the channel.

Constructed once at startup, injected into consumers, disposed with
``stop()`` (or by leaving ``async with``). Wires one ChannelManager to one
EventDispatcher and one NotificationStore.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from wms.core.config import ChannelSettings
from wms.notifications.audio import SoundPlayer
from wms.notifications.dispatcher import EventDispatcher
from wms.notifications.models import AudioCue, NotificationEvent, Toast
from wms.notifications.store import NotificationStore
from wms.realtime.channel import ChannelConfig, ChannelManager
from wms.realtime.scheduler import Scheduler
from wms.realtime.signals import RuntimeSignals
from wms.realtime.transport import TransportFactory, websockets_transport_factory

logger = logging.getLogger(__name__)


class NotificationContext:
    """Channel + dispatcher + store for one client session."""

    def __init__(
        self,
        config: ChannelConfig,
        toast: Optional[Callable[[Toast], None]] = None,
        player: Optional[SoundPlayer] = None,
        signals: Optional[RuntimeSignals] = None,
        transport_factory: TransportFactory = websockets_transport_factory,
        scheduler: Optional[Scheduler] = None,
    ):
        self.store = NotificationStore()
        self.player = player or SoundPlayer()
        self.dispatcher = EventDispatcher(self.store, toast=toast, player=self.player)
        self.channel = ChannelManager(
            config,
            on_message=self.dispatcher.dispatch,
            transport_factory=transport_factory,
            scheduler=scheduler,
            signals=signals,
        )
        self.dispatcher.reply = self.channel.send

    @classmethod
    def from_settings(cls, settings: ChannelSettings, **kwargs) -> "NotificationContext":
        return cls(ChannelConfig.from_settings(settings), **kwargs)

    @property
    def signals(self) -> RuntimeSignals:
        return self.channel.signals

    # Lifecycle

    def start(self) -> None:
        self.channel.start()

    def stop(self) -> None:
        self.channel.stop()

    async def __aenter__(self) -> "NotificationContext":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    # Consumer API

    @property
    def notifications(self) -> List[NotificationEvent]:
        return self.store.notifications

    @property
    def unread_count(self) -> int:
        return self.store.unread_count

    def mark_read(self, notification_id: str) -> bool:
        return self.store.mark_read(notification_id)

    def mark_all_read(self) -> int:
        return self.store.mark_all_read()

    def clear(self) -> None:
        self.store.clear()

    def play_sound(self, cue: AudioCue = AudioCue.SUCCESS) -> bool:
        return self.player.play(cue)
