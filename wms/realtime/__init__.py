"""
Real-time channel infrastructure

WebSocket channel with:
- Backoff-with-jitter reconnection that never gives up
- Idle-driven application heartbeats and health checks
- Connectivity/visibility-aware immediate reconnects
"""

from wms.realtime.channel import ChannelConfig, ChannelManager
from wms.realtime.policy import HeartbeatState, ReconnectPolicy
from wms.realtime.scheduler import LoopScheduler, Scheduler
from wms.realtime.signals import RuntimeEvent, RuntimeSignals
from wms.realtime.transport import (
    ConnectionState,
    Transport,
    TransportHandlers,
    WebsocketsTransport,
    endpoint_url,
)

__all__ = [
    "ChannelConfig",
    "ChannelManager",
    "ConnectionState",
    "HeartbeatState",
    "LoopScheduler",
    "ReconnectPolicy",
    "RuntimeEvent",
    "RuntimeSignals",
    "Scheduler",
    "Transport",
    "TransportHandlers",
    "WebsocketsTransport",
    "endpoint_url",
]
