"""
Resilient Real-Time Notification Channel

Features:
- Backoff with jitter for reconnection (ratio 1.5, never gives up)
- Application-level ping after inbound silence, with a health-check timeout
- Immediate reconnect when the network returns or the page becomes visible
- Retries deferred while the runtime reports no connectivity

All state changes happen on one event loop. Timers are callbacks, never
sleeps, and each new timer of a kind cancels its predecessor. Callbacks
from a transport the manager no longer owns are ignored.
"""

from __future__ import annotations

import itertools
import json
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Optional, Union

from wms.core.config import ChannelSettings
from wms.core.structured_logging import LogContext
from wms.realtime.policy import HeartbeatState, ReconnectPolicy
from wms.realtime.scheduler import LoopScheduler, Scheduler, TimerHandle
from wms.realtime.signals import RuntimeEvent, RuntimeSignals
from wms.realtime.transport import (
    ConnectionState,
    Transport,
    TransportFactory,
    TransportHandlers,
    endpoint_url,
    websockets_transport_factory,
)

logger = logging.getLogger(__name__)


@dataclass
class ChannelConfig:
    """Channel manager configuration. Delays are in seconds."""

    origin: str = "http://localhost:5000"
    url: str = ""  # Explicit endpoint; derived from origin when empty

    # Reconnection
    base_delay: float = 1.0
    max_delay: float = 30.0
    max_attempts: int = 10

    # Heartbeat
    ping_interval: float = 25.0
    health_check_timeout: float = 10.0

    # 0 = frames sent while not open are dropped
    outbound_queue_size: int = 0

    @property
    def endpoint(self) -> str:
        return self.url or endpoint_url(self.origin)

    @classmethod
    def from_settings(cls, settings: ChannelSettings) -> "ChannelConfig":
        """Build a channel config from validated settings."""
        return cls(
            origin=settings.origin,
            url=settings.ws_url or "",
            base_delay=settings.base_delay,
            max_delay=settings.max_delay,
            max_attempts=settings.max_attempts,
            ping_interval=settings.ping_interval,
            health_check_timeout=settings.health_check_timeout,
            outbound_queue_size=settings.outbound_queue_size,
        )


class ChannelManager:
    """
    Owns the lifecycle of one logical real-time channel.

    Consumers see a stream of inbound frames through ``on_message``;
    reconnection churn is hidden from them.
    """

    def __init__(
        self,
        config: ChannelConfig,
        on_message: Optional[Callable[[Union[str, bytes]], None]] = None,
        transport_factory: TransportFactory = websockets_transport_factory,
        scheduler: Optional[Scheduler] = None,
        signals: Optional[RuntimeSignals] = None,
        policy: Optional[ReconnectPolicy] = None,
    ):
        """
        Initialize the channel manager.

        Args:
            config: Channel configuration
            on_message: Receives every inbound frame, in arrival order
            transport_factory: Creates one transport per connection attempt
            scheduler: Timer source (defaults to the running asyncio loop)
            signals: Connectivity/visibility signals
            policy: Reconnect policy (built from config when omitted)
        """
        self.config = config
        self.on_message = on_message
        self._transport_factory = transport_factory
        self._scheduler: Scheduler = scheduler or LoopScheduler()
        self.signals = signals or RuntimeSignals()
        self.policy = policy or ReconnectPolicy(
            base_delay=config.base_delay,
            max_delay=config.max_delay,
            max_attempts=config.max_attempts,
        )
        self.heartbeat = HeartbeatState()

        self._state = ConnectionState.DISCONNECTED
        self._transport: Optional[Transport] = None
        self._running = False
        self._listeners_attached = False
        self._retry_deferred = False
        self._attempt_ids = itertools.count(1)

        self._reconnect_timer: Optional[TimerHandle] = None
        self._idle_timer: Optional[TimerHandle] = None
        self._health_timer: Optional[TimerHandle] = None

        self._outbound: Deque[str] = deque(maxlen=config.outbound_queue_size or None)

        self._stats: Dict[str, Any] = {
            "connect_attempts": 0,
            "messages_received": 0,
            "reconnect_count": 0,
            "pings_sent": 0,
            "health_check_failures": 0,
            "dropped_sends": 0,
            "last_connect_time": None,
        }

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ConnectionState.OPEN

    @property
    def running(self) -> bool:
        return self._running

    @property
    def transport(self) -> Optional[Transport]:
        return self._transport

    @property
    def retry_deferred(self) -> bool:
        """True when a retry came due while offline and is waiting for connectivity."""
        return self._retry_deferred

    @property
    def stats(self) -> Dict[str, Any]:
        return self._stats.copy()

    def pending_timers(self) -> int:
        """Number of armed timers (reconnect, idle, health check)."""
        return sum(
            t is not None
            for t in (self._reconnect_timer, self._idle_timer, self._health_timer)
        )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Open the channel. No-op while connecting or open.

        Cancels any scheduled retry: this call is the attempt.
        """
        self._running = True
        self._attach_listeners()

        if self._state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            return

        self._cancel_timer("_reconnect_timer")
        self._retry_deferred = False
        self._release_transport()

        url = self.config.endpoint
        attempt_id = next(self._attempt_ids)
        self._state = ConnectionState.CONNECTING
        self._stats["connect_attempts"] += 1

        with LogContext(correlation_id=f"conn-{attempt_id}"):
            logger.debug(
                "[Channel] Connecting to %s (attempt %d)", url, self.policy.attempt_count
            )

        handlers = TransportHandlers(
            on_open=self._handle_open,
            on_message=self._handle_message,
            on_close=self._handle_close,
            on_error=self._handle_error,
        )
        try:
            self._transport = self._transport_factory(url, handlers)
        except Exception as e:
            logger.warning("[Channel] Could not create transport: %s", e)
            self._transport = None
            self._on_transport_lost(f"transport creation failed: {e}")

    def stop(self) -> None:
        """Cancel every timer, detach listeners and close the transport."""
        self._running = False
        self._retry_deferred = False
        self._cancel_all_timers()
        self._detach_listeners()

        if self._transport is not None:
            self._state = ConnectionState.CLOSING
            self._release_transport()

        self._state = ConnectionState.DISCONNECTED
        self._outbound.clear()
        self.heartbeat.reset()
        logger.info("[Channel] Stopped")

    def send(self, event: Dict[str, Any]) -> bool:
        """
        Send a structured message.

        Returns:
            True if the frame was handed to an open transport. Otherwise the
            frame is dropped, or buffered when an outbound queue is configured.
        """
        data = json.dumps(event, default=str)

        if self.is_open and self._transport is not None:
            try:
                self._transport.send(data)
                return True
            except Exception as e:
                logger.warning("[Channel] Send failed: %s", e)
                return False

        if self._running and self._outbound.maxlen:
            self._outbound.append(data)
            logger.debug("[Channel] Buffered frame (%d queued)", len(self._outbound))
        else:
            self._stats["dropped_sends"] += 1
            logger.debug("[Channel] Dropped frame: channel not open")
        return False

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------

    def _owns(self, transport: Transport) -> bool:
        return self._running and transport is self._transport

    def _handle_open(self, transport: Transport) -> None:
        if not self._owns(transport):
            return

        if self._stats["last_connect_time"] is not None:
            self._stats["reconnect_count"] += 1
        self._state = ConnectionState.OPEN
        self.policy.reset()
        self.heartbeat.reset(self._scheduler.monotonic())
        self._stats["last_connect_time"] = self._scheduler.wall_time()
        logger.info("[Channel] Connected to %s", transport.url)

        self._arm_idle_timer()
        self._flush_outbound()

    def _handle_message(self, transport: Transport, message: Union[str, bytes]) -> None:
        if not self._owns(transport):
            return

        self.heartbeat.touch(self._scheduler.monotonic())
        self._stats["messages_received"] += 1
        self._cancel_timer("_health_timer")
        self._arm_idle_timer()

        if self.on_message is None:
            return
        try:
            self.on_message(message)
        except Exception:
            logger.exception("[Channel] Message consumer failed")

    def _handle_close(self, transport: Transport, reason: str) -> None:
        if not self._owns(transport):
            return
        logger.info("[Channel] Disconnected: %s", reason)
        self._on_transport_lost(reason)

    def _handle_error(self, transport: Transport, error: Exception) -> None:
        if not self._owns(transport):
            return
        logger.warning("[Channel] Transport error: %s", error)
        self._on_transport_lost(str(error))

    def _on_transport_lost(self, reason: str) -> None:
        self._cancel_timer("_idle_timer")
        self._cancel_timer("_health_timer")
        self._release_transport()
        self._state = ConnectionState.DISCONNECTED
        self.heartbeat.reset()

        if self._running:
            self._schedule_reconnect()

    # ------------------------------------------------------------------
    # Reconnection
    # ------------------------------------------------------------------

    def _schedule_reconnect(self) -> None:
        self._cancel_timer("_reconnect_timer")
        delay = self.policy.next_delay()
        logger.info(
            "[Channel] Reconnecting in %.1fs (attempt %d/%d)",
            delay,
            self.policy.attempt_count + 1,
            self.policy.max_attempts,
        )
        self._reconnect_timer = self._scheduler.call_later(delay, self._fire_reconnect)

    def _fire_reconnect(self) -> None:
        self._reconnect_timer = None
        if not self._running or self._state is not ConnectionState.DISCONNECTED:
            return

        if not self.signals.is_online:
            self._retry_deferred = True
            logger.info("[Channel] Offline; retry deferred until connectivity returns")
            return

        self.policy.record_attempt()
        self.start()

    def _restart_fresh(self, reason: str) -> None:
        """Reconnect now with the backoff counter reset."""
        logger.info("[Channel] Immediate reconnect: %s", reason)
        self.policy.reset()
        self.start()

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    def _arm_idle_timer(self) -> None:
        self._cancel_timer("_idle_timer")
        self._idle_timer = self._scheduler.call_later(
            self.config.ping_interval, self._on_idle
        )

    def _on_idle(self) -> None:
        self._idle_timer = None
        if not self.is_open or self._transport is None:
            return

        ping = {"type": "ping", "timestamp": int(self._scheduler.wall_time() * 1000)}
        try:
            self._transport.send(json.dumps(ping))
        except Exception as e:
            logger.warning("[Channel] Ping failed: %s", e)
        self.heartbeat.ping_sent(self._scheduler.monotonic())
        self._stats["pings_sent"] += 1
        logger.debug("[Channel] Ping sent")

        self._cancel_timer("_health_timer")
        self._health_timer = self._scheduler.call_later(
            self.config.health_check_timeout, self._on_health_check_timeout
        )

    def _on_health_check_timeout(self) -> None:
        self._health_timer = None
        if not self.heartbeat.pending_health_check or not self.is_open:
            return

        self._stats["health_check_failures"] += 1
        logger.warning(
            "[Channel] No reply within %.1fs of ping; forcing reconnect",
            self.config.health_check_timeout,
        )
        self._cancel_timer("_idle_timer")
        self._release_transport()
        self._state = ConnectionState.DISCONNECTED
        self.heartbeat.reset()
        self._restart_fresh("health check failed")

    # ------------------------------------------------------------------
    # Runtime signals
    # ------------------------------------------------------------------

    def _attach_listeners(self) -> None:
        if self._listeners_attached:
            return
        self.signals.add_listener(RuntimeEvent.ONLINE, self._on_online)
        self.signals.add_listener(RuntimeEvent.OFFLINE, self._on_offline)
        self.signals.add_listener(RuntimeEvent.VISIBLE, self._on_visible)
        self._listeners_attached = True

    def _detach_listeners(self) -> None:
        if not self._listeners_attached:
            return
        self.signals.remove_listener(RuntimeEvent.ONLINE, self._on_online)
        self.signals.remove_listener(RuntimeEvent.OFFLINE, self._on_offline)
        self.signals.remove_listener(RuntimeEvent.VISIBLE, self._on_visible)
        self._listeners_attached = False

    def _on_online(self) -> None:
        if self._running:
            self._restart_fresh("network online")

    def _on_offline(self) -> None:
        logger.info("[Channel] Network offline")

    def _on_visible(self) -> None:
        if self._running and self._state is ConnectionState.DISCONNECTED:
            self._restart_fresh("page visible")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _release_transport(self) -> None:
        """Drop ownership first, then close, so late callbacks are ignored."""
        transport, self._transport = self._transport, None
        if transport is None:
            return
        try:
            transport.close()
        except Exception as e:
            logger.debug("[Channel] Error closing transport: %s", e)

    def _flush_outbound(self) -> None:
        while self._outbound and self.is_open and self._transport is not None:
            data = self._outbound.popleft()
            try:
                self._transport.send(data)
            except Exception as e:
                logger.warning("[Channel] Flush failed: %s", e)
                break

    def _cancel_timer(self, name: str) -> None:
        timer = getattr(self, name)
        if timer is not None:
            timer.cancel()
            setattr(self, name, None)

    def _cancel_all_timers(self) -> None:
        for name in ("_reconnect_timer", "_idle_timer", "_health_timer"):
            self._cancel_timer(name)
