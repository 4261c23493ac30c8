"""
Test configuration
- Environment isolation
- Manual clock scheduler and scripted transports for channel tests
"""

import json
import random
from typing import Any, Callable, List, Optional, Union

import pytest

from wms.core.exceptions import TransportError
from wms.realtime.channel import ChannelConfig, ChannelManager
from wms.realtime.policy import ReconnectPolicy
from wms.realtime.signals import RuntimeSignals
from wms.realtime.transport import ConnectionState, Transport, TransportHandlers


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """Keep developer WMS_* variables out of the tests."""
    for name in (
        "WMS_ORIGIN",
        "WMS_WS_URL",
        "WMS_BASE_DELAY",
        "WMS_MAX_DELAY",
        "WMS_MAX_ATTEMPTS",
        "WMS_PING_INTERVAL",
        "WMS_HEALTH_CHECK_TIMEOUT",
        "WMS_OUTBOUND_QUEUE_SIZE",
        "WMS_LOG_LEVEL",
        "WMS_LOG_JSON",
        "WMS_SSL_CERTFILE",
        "WMS_SSL_KEYFILE",
        "WMS_HUB_SWEEP_INTERVAL",
    ):
        monkeypatch.delenv(name, raising=False)


class ManualTimer:
    """Timer handle driven by ManualScheduler."""

    def __init__(self, when: float, delay: float, callback: Callable, args: tuple):
        self.when = when
        self.delay = delay
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose clock only moves when a test calls advance()."""

    WALL_EPOCH = 1_700_000_000.0

    def __init__(self):
        self.now = 0.0
        self.timers: List[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable, *args: Any) -> ManualTimer:
        timer = ManualTimer(self.now + delay, delay, callback, args)
        self.timers.append(timer)
        return timer

    def monotonic(self) -> float:
        return self.now

    def wall_time(self) -> float:
        return self.WALL_EPOCH + self.now

    def pending(self) -> List[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self.now + seconds
        while True:
            due = sorted(
                (t for t in self.pending() if t.when <= target + 1e-9),
                key=lambda t: t.when,
            )
            if not due:
                break
            timer = due[0]
            self.now = max(self.now, timer.when)
            timer.fired = True
            timer.callback(*timer.args)
        self.now = target


class ScriptedTransport(Transport):
    """Transport whose lifecycle is driven by the test."""

    def __init__(self, url: str, handlers: TransportHandlers):
        super().__init__(url, handlers)
        self._state = ConnectionState.CONNECTING
        self.sent: List[str] = []
        self.closed = False

    @property
    def ready_state(self) -> ConnectionState:
        return self._state

    @property
    def sent_json(self) -> List[dict]:
        return [json.loads(s) for s in self.sent]

    def send(self, data: str) -> None:
        if self._state is not ConnectionState.OPEN:
            raise TransportError("Transport is not open", url=self.url)
        self.sent.append(data)

    def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self._state = ConnectionState.DISCONNECTED

    # Test drivers

    def open(self) -> None:
        self._state = ConnectionState.OPEN
        self.handlers.on_open(self)

    def receive(self, payload: Union[str, dict]) -> None:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        self.handlers.on_message(self, data)

    def drop(self, reason: str = "connection closed (1006)") -> None:
        self._state = ConnectionState.DISCONNECTED
        self.handlers.on_close(self, reason)

    def fail(self, error: Optional[Exception] = None) -> None:
        self._state = ConnectionState.DISCONNECTED
        self.handlers.on_error(self, error or TransportError("refused", url=self.url))


class TransportRecorder:
    """Transport factory that keeps every transport it creates."""

    def __init__(self):
        self.created: List[ScriptedTransport] = []

    def __call__(self, url: str, handlers: TransportHandlers) -> ScriptedTransport:
        transport = ScriptedTransport(url, handlers)
        self.created.append(transport)
        return transport

    @property
    def latest(self) -> ScriptedTransport:
        return self.created[-1]


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def transports():
    return TransportRecorder()


@pytest.fixture
def signals():
    return RuntimeSignals()


@pytest.fixture
def make_channel(scheduler, transports, signals):
    """Build a ChannelManager on the manual clock; kwargs override ChannelConfig."""

    def _make(on_message=None, seed: int = 7, **config_kwargs) -> ChannelManager:
        config = ChannelConfig(origin="https://wms.example.com", **config_kwargs)
        policy = ReconnectPolicy(
            base_delay=config.base_delay,
            max_delay=config.max_delay,
            max_attempts=config.max_attempts,
            rng=random.Random(seed),
        )
        return ChannelManager(
            config,
            on_message=on_message,
            transport_factory=transports,
            scheduler=scheduler,
            signals=signals,
            policy=policy,
        )

    return _make
