"""
Tests for ChannelManager

Tests:
- Idempotent start and endpoint derivation
- Backoff reconnection and sustained outages
- Idle heartbeat, health checks and fast recovery
- Online/visibility triggers and offline deferral
- Full teardown on stop
"""

import pytest

from wms.core.config import ChannelSettings
from wms.realtime.channel import ChannelConfig
from wms.realtime.signals import RuntimeEvent
from wms.realtime.transport import ConnectionState


class TestChannelConfig:
    """Test ChannelConfig."""

    def test_endpoint_from_secure_origin(self):
        config = ChannelConfig(origin="https://wms.example.com")
        assert config.endpoint == "wss://wms.example.com/ws"

    def test_endpoint_from_insecure_origin(self):
        config = ChannelConfig(origin="http://localhost:5000")
        assert config.endpoint == "ws://localhost:5000/ws"

    def test_explicit_url_wins(self):
        config = ChannelConfig(origin="https://wms.example.com", url="ws://10.0.0.5/ws")
        assert config.endpoint == "ws://10.0.0.5/ws"

    def test_from_settings(self):
        settings = ChannelSettings(
            origin="https://ops.example.com",
            base_delay=2.0,
            max_delay=60.0,
            max_attempts=6,
            ping_interval=15.0,
            health_check_timeout=5.0,
            outbound_queue_size=8,
        )

        config = ChannelConfig.from_settings(settings)

        assert config.endpoint == "wss://ops.example.com/ws"
        assert config.base_delay == 2.0
        assert config.max_delay == 60.0
        assert config.max_attempts == 6
        assert config.ping_interval == 15.0
        assert config.health_check_timeout == 5.0
        assert config.outbound_queue_size == 8


class TestStart:
    """Test start() and the open transition."""

    def test_initial_state(self, make_channel):
        channel = make_channel()

        assert channel.state is ConnectionState.DISCONNECTED
        assert channel.transport is None
        assert channel.running is False

    def test_start_opens_transport_to_endpoint(self, make_channel, transports):
        channel = make_channel()

        channel.start()

        assert channel.state is ConnectionState.CONNECTING
        assert len(transports.created) == 1
        assert transports.latest.url == "wss://wms.example.com/ws"

    def test_start_is_idempotent_while_connecting(self, make_channel, transports):
        channel = make_channel()

        channel.start()
        channel.start()
        channel.start()

        assert len(transports.created) == 1

    def test_start_is_idempotent_while_open(self, make_channel, transports):
        channel = make_channel()
        channel.start()
        transports.latest.open()

        channel.start()

        assert channel.state is ConnectionState.OPEN
        assert len(transports.created) == 1

    def test_open_resets_attempts_and_arms_idle_timer(
        self, make_channel, transports, scheduler
    ):
        channel = make_channel(ping_interval=25.0)
        channel.policy.attempt_count = 3
        channel.start()

        transports.latest.open()

        assert channel.is_open
        assert channel.policy.attempt_count == 0
        assert channel.heartbeat.pending_health_check is False
        assert [t.delay for t in scheduler.pending()] == [25.0]
        assert channel.stats["last_connect_time"] == scheduler.wall_time()

    def test_factory_failure_schedules_retry(self, make_channel, scheduler):
        def broken_factory(url, handlers):
            raise OSError("no route to host")

        channel = make_channel()
        channel._transport_factory = broken_factory

        channel.start()

        assert channel.state is ConnectionState.DISCONNECTED
        assert len(scheduler.pending()) == 1


class TestSend:
    """Test outbound frames."""

    def test_send_when_open(self, make_channel, transports):
        channel = make_channel()
        channel.start()
        transports.latest.open()

        assert channel.send({"type": "subscribe", "topic": "orders"}) is True
        assert transports.latest.sent_json == [{"type": "subscribe", "topic": "orders"}]

    def test_send_dropped_when_not_open(self, make_channel, transports):
        channel = make_channel()
        channel.start()

        assert channel.send({"type": "subscribe"}) is False
        assert channel.stats["dropped_sends"] == 1

        transports.latest.open()
        assert transports.latest.sent == []

    def test_bounded_outbound_queue_flushes_on_open(self, make_channel, transports):
        channel = make_channel(outbound_queue_size=2)
        channel.start()

        for n in range(3):
            assert channel.send({"type": "note", "n": n}) is False

        transports.latest.open()

        # Oldest frame was discarded
        assert transports.latest.sent_json == [
            {"type": "note", "n": 1},
            {"type": "note", "n": 2},
        ]


class TestReconnect:
    """Test backoff reconnection."""

    def test_close_at_attempt_zero_schedules_jittered_retry(
        self, make_channel, transports, scheduler
    ):
        channel = make_channel(base_delay=1.0)
        channel.start()
        transports.latest.open()

        transports.latest.drop()

        assert channel.state is ConnectionState.DISCONNECTED
        assert channel.transport is None
        pending = scheduler.pending()
        assert len(pending) == 1
        assert 0.8 <= pending[0].delay <= 1.2

    def test_retry_increments_attempt_and_reconnects(
        self, make_channel, transports, scheduler
    ):
        channel = make_channel()
        channel.start()
        transports.latest.open()
        transports.latest.drop()

        delay = scheduler.pending()[0].delay
        scheduler.advance(delay)

        assert channel.policy.attempt_count == 1
        assert len(transports.created) == 2
        assert channel.state is ConnectionState.CONNECTING

    def test_transport_error_schedules_retry(self, make_channel, transports, scheduler):
        channel = make_channel()
        channel.start()

        transports.latest.fail()

        assert channel.state is ConnectionState.DISCONNECTED
        assert len(scheduler.pending()) == 1

    def test_successful_reopen_resets_attempts(self, make_channel, transports, scheduler):
        channel = make_channel()
        channel.start()
        for _ in range(3):
            transports.latest.fail()
            scheduler.advance(scheduler.pending()[0].delay)
        assert channel.policy.attempt_count == 3

        transports.latest.open()

        assert channel.policy.attempt_count == 0
        assert channel.stats["reconnect_count"] == 0

    def test_reconnect_count_tracks_reopened_connections(
        self, make_channel, transports, scheduler
    ):
        channel = make_channel()
        channel.start()
        transports.latest.open()
        transports.latest.drop()
        scheduler.advance(scheduler.pending()[0].delay)

        transports.latest.open()

        assert channel.stats["reconnect_count"] == 1

    def test_superseded_transport_is_ignored(self, make_channel, transports, scheduler):
        received = []
        channel = make_channel(on_message=received.append)
        channel.start()
        old = transports.latest
        old.open()
        old.drop()
        scheduler.advance(scheduler.pending()[0].delay)
        new = transports.latest

        old.receive({"type": "pong"})
        old.drop()

        assert received == []
        assert new is channel.transport
        assert channel.state is ConnectionState.CONNECTING
        assert scheduler.pending() == []

    def test_sustained_outage_never_gives_up(self, make_channel, transports, scheduler):
        channel = make_channel(base_delay=1.0, max_delay=30.0, max_attempts=4)
        channel.start()
        delays = []

        for _ in range(10):
            transports.latest.fail()
            timer = scheduler.pending()[0]
            delays.append(timer.delay)
            scheduler.advance(timer.delay)
            assert channel.policy.attempt_count <= 4

        assert all(d < 30.0 for d in delays[:4])
        assert delays[4:] == [30.0] * 6
        assert len(transports.created) == 11
        assert channel.running is True


class TestHeartbeat:
    """Test idle pings and health checks."""

    def _open(self, make_channel, transports, **kwargs):
        channel = make_channel(ping_interval=25.0, health_check_timeout=10.0, **kwargs)
        channel.start()
        transports.latest.open()
        return channel

    def test_single_ping_after_silence(self, make_channel, transports, scheduler):
        channel = self._open(make_channel, transports)

        scheduler.advance(24.0)
        assert transports.latest.sent == []

        scheduler.advance(1.0)
        pings = transports.latest.sent_json
        assert len(pings) == 1
        assert pings[0]["type"] == "ping"
        assert pings[0]["timestamp"] == int(scheduler.wall_time() * 1000)
        assert channel.heartbeat.pending_health_check is True

        scheduler.advance(9.5)
        assert len(transports.latest.sent) == 1
        assert channel.stats["pings_sent"] == 1

    def test_inbound_traffic_postpones_ping(self, make_channel, transports, scheduler):
        self._open(make_channel, transports)

        for _ in range(5):
            scheduler.advance(20.0)
            transports.latest.receive({"type": "documentUploaded"})

        assert transports.latest.sent == []

    def test_pong_cancels_health_check(self, make_channel, transports, scheduler):
        channel = self._open(make_channel, transports)
        scheduler.advance(25.0)

        transports.latest.receive({"type": "pong"})
        scheduler.advance(10.0)

        assert channel.is_open
        assert len(transports.created) == 1
        assert channel.heartbeat.pending_health_check is False
        assert channel.stats["health_check_failures"] == 0

    def test_any_message_cancels_health_check(self, make_channel, transports, scheduler):
        channel = self._open(make_channel, transports)
        scheduler.advance(25.0)

        transports.latest.receive(
            {"type": "orderStatusChange", "orderId": 1, "orderNumber": "A", "newStatus": "picked"}
        )
        scheduler.advance(10.0)

        assert channel.is_open
        assert len(transports.created) == 1

    def test_idle_clock_restarts_after_reply(self, make_channel, transports, scheduler):
        self._open(make_channel, transports)
        scheduler.advance(25.0)
        transports.latest.receive({"type": "pong"})

        scheduler.advance(25.0)

        assert [f["type"] for f in transports.latest.sent_json] == ["ping", "ping"]

    def test_health_check_timeout_forces_fast_reconnect(
        self, make_channel, transports, scheduler
    ):
        channel = self._open(make_channel, transports)
        channel.policy.attempt_count = 2
        first = transports.latest

        scheduler.advance(25.0 + 10.0)

        assert first.closed is True
        assert len(transports.created) == 2
        assert channel.state is ConnectionState.CONNECTING
        assert channel.policy.attempt_count == 0
        assert channel.stats["health_check_failures"] == 1
        # Immediate restart, no backoff timer
        assert scheduler.pending() == []

    def test_messages_delivered_in_order(self, make_channel, transports):
        received = []
        channel = make_channel(on_message=received.append)
        channel.start()
        transports.latest.open()

        for n in range(5):
            transports.latest.receive(f'{{"type": "x", "n": {n}}}')

        assert received == [f'{{"type": "x", "n": {n}}}' for n in range(5)]
        assert channel.stats["messages_received"] == 5

    def test_consumer_failure_does_not_close_channel(self, make_channel, transports):
        def explode(message):
            raise ValueError("bad consumer")

        channel = make_channel(on_message=explode)
        channel.start()
        transports.latest.open()

        transports.latest.receive({"type": "notification"})

        assert channel.is_open


class TestRuntimeTriggers:
    """Test online/visibility triggers."""

    def test_visible_while_disconnected_reconnects_immediately(
        self, make_channel, transports, scheduler, signals
    ):
        channel = make_channel()
        channel.start()
        transports.latest.fail()
        channel.policy.attempt_count = 4
        assert len(scheduler.pending()) == 1

        signals.set_visible(False)
        signals.set_visible(True)

        assert len(transports.created) == 2
        assert channel.policy.attempt_count == 0
        assert channel.state is ConnectionState.CONNECTING
        assert scheduler.pending() == []

    def test_visible_while_open_is_noop(self, make_channel, transports, signals):
        make_channel().start()
        transports.latest.open()

        signals.set_visible(False)
        signals.set_visible(True)

        assert len(transports.created) == 1

    def test_online_resets_and_reconnects(self, make_channel, transports, signals):
        channel = make_channel()
        channel.start()
        transports.latest.fail()
        channel.policy.attempt_count = 3

        signals.set_online(False)
        signals.set_online(True)

        assert len(transports.created) == 2
        assert channel.policy.attempt_count == 0

    def test_retry_deferred_while_offline(self, make_channel, transports, scheduler, signals):
        channel = make_channel()
        channel.start()
        transports.latest.open()
        signals.set_online(False)
        transports.latest.drop()

        scheduler.advance(scheduler.pending()[0].delay)

        assert len(transports.created) == 1
        assert channel.retry_deferred is True
        assert channel.policy.attempt_count == 0

        signals.set_online(True)

        assert len(transports.created) == 2
        assert channel.retry_deferred is False

    def test_listeners_attached_once(self, make_channel, transports, scheduler, signals):
        channel = make_channel()
        channel.start()
        transports.latest.fail()
        scheduler.advance(scheduler.pending()[0].delay)

        assert signals.listener_count() == 3
        assert signals.listener_count(RuntimeEvent.HIDDEN) == 0


class TestStop:
    """Test teardown."""

    def test_stop_leaves_no_timers_or_listeners(
        self, make_channel, transports, scheduler, signals
    ):
        channel = make_channel()
        channel.start()
        transports.latest.open()
        scheduler.advance(channel.config.ping_interval)
        assert channel.pending_timers() == 1  # health check armed

        channel.stop()

        assert channel.pending_timers() == 0
        assert scheduler.pending() == []
        assert signals.listener_count() == 0
        assert transports.latest.closed is True
        assert channel.state is ConnectionState.DISCONNECTED

    def test_stop_cancels_pending_reconnect(self, make_channel, transports, scheduler):
        channel = make_channel()
        channel.start()
        transports.latest.fail()

        channel.stop()
        scheduler.advance(60.0)

        assert scheduler.pending() == []
        assert len(transports.created) == 1

    def test_activity_suppressed_after_stop(self, make_channel, transports, signals):
        received = []
        channel = make_channel(on_message=received.append)
        channel.start()
        old = transports.latest
        old.open()

        channel.stop()
        old.receive({"type": "pong"})
        old.drop()
        signals.set_visible(False)
        signals.set_visible(True)

        assert received == []
        assert channel.send({"type": "ping"}) is False
        assert len(transports.created) == 1

    def test_restart_after_stop(self, make_channel, transports, signals):
        channel = make_channel()
        channel.start()
        channel.stop()

        channel.start()

        assert len(transports.created) == 2
        assert signals.listener_count() == 3

    @pytest.mark.parametrize("stops", [1, 2])
    def test_stop_is_repeatable(self, make_channel, stops):
        channel = make_channel()
        channel.start()

        for _ in range(stops):
            channel.stop()

        assert channel.state is ConnectionState.DISCONNECTED
