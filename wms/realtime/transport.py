"""
WebSocket transport for the notification channel.

A transport is one connection attempt. It reports its lifecycle through
``TransportHandlers`` callbacks on the event loop and never reconnects
by itself; reconnection belongs to the channel manager.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Optional, Set, Union
from urllib.parse import urlsplit

import websockets
from websockets.exceptions import ConnectionClosed

from wms.core.exceptions import InvalidConfigError, TransportError

logger = logging.getLogger(__name__)

WS_PATH = "/ws"


class ConnectionState(Enum):
    """Readiness of the channel's transport."""

    DISCONNECTED = auto()
    CONNECTING = auto()
    OPEN = auto()
    CLOSING = auto()


def endpoint_url(origin: str, path: str = WS_PATH) -> str:
    """
    Derive the WebSocket endpoint from the hosting page origin.

    ``https://wms.example.com`` -> ``wss://wms.example.com/ws``
    ``http://localhost:5000``   -> ``ws://localhost:5000/ws``
    """
    parts = urlsplit(origin)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise InvalidConfigError(
            f"Origin must be an http(s) URL with a host: {origin!r}",
            origin=origin,
        )
    scheme = "wss" if parts.scheme == "https" else "ws"
    return f"{scheme}://{parts.netloc}{path}"


@dataclass
class TransportHandlers:
    """Callbacks a transport invokes; each receives the transport first."""

    on_open: Callable[["Transport"], None]
    on_message: Callable[["Transport", Union[str, bytes]], None]
    on_close: Callable[["Transport", str], None]
    on_error: Callable[["Transport", Exception], None]


class Transport(ABC):
    """One bidirectional connection attempt."""

    def __init__(self, url: str, handlers: TransportHandlers):
        self.url = url
        self.handlers = handlers

    @property
    @abstractmethod
    def ready_state(self) -> ConnectionState:
        """Current readiness."""

    @abstractmethod
    def send(self, data: str) -> None:
        """Queue a text frame for sending."""

    @abstractmethod
    def close(self, code: int = 1000, reason: str = "") -> None:
        """Begin closing; no further callbacks are expected to matter."""


TransportFactory = Callable[[str, TransportHandlers], Transport]


class WebsocketsTransport(Transport):
    """
    Transport backed by the ``websockets`` asyncio client.

    Must be created while an event loop is running. Protocol-level pings
    are disabled; liveness is handled by application heartbeats.
    """

    def __init__(
        self,
        url: str,
        handlers: TransportHandlers,
        open_timeout: float = 30.0,
        close_timeout: float = 10.0,
    ):
        super().__init__(url, handlers)
        self.open_timeout = open_timeout
        self.close_timeout = close_timeout
        self._ws: Any = None
        self._state = ConnectionState.CONNECTING
        # The loop only keeps weak references to tasks
        self._pending: Set["asyncio.Future[Any]"] = set()
        self._task = asyncio.get_running_loop().create_task(self._run())

    @property
    def ready_state(self) -> ConnectionState:
        return self._state

    def _spawn(self, awaitable: Awaitable[Any]) -> "asyncio.Future[Any]":
        future = asyncio.ensure_future(awaitable)
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)
        return future

    async def _run(self) -> None:
        connecting = self._spawn(
            websockets.connect(
                self.url,
                ping_interval=None,  # Heartbeats are application-level
                ping_timeout=None,
                open_timeout=self.open_timeout,
                close_timeout=self.close_timeout,
            )
        )
        try:
            self._ws = await asyncio.shield(connecting)
        except asyncio.CancelledError:
            self._state = ConnectionState.DISCONNECTED
            connecting.add_done_callback(self._close_late_connection)
            raise
        except Exception as e:
            self._state = ConnectionState.DISCONNECTED
            self.handlers.on_error(
                self, TransportError(f"Connection failed: {e}", url=self.url, cause=e)
            )
            return

        if self._state is ConnectionState.CLOSING:
            # close() was called while the handshake was in flight
            await self._ws.close()
            self._state = ConnectionState.DISCONNECTED
            return

        self._state = ConnectionState.OPEN
        self.handlers.on_open(self)

        reason = "closed"
        try:
            async for message in self._ws:
                self.handlers.on_message(self, message)
        except ConnectionClosed as e:
            reason = f"connection closed ({e.rcvd.code if e.rcvd else 'no close frame'})"
        except asyncio.CancelledError:
            self._state = ConnectionState.DISCONNECTED
            raise
        except Exception as e:
            self._state = ConnectionState.DISCONNECTED
            self.handlers.on_error(
                self, TransportError(f"Receive failed: {e}", url=self.url, cause=e)
            )
            return

        self._state = ConnectionState.DISCONNECTED
        self.handlers.on_close(self, reason)

    def send(self, data: str) -> None:
        if self._state is not ConnectionState.OPEN or self._ws is None:
            raise TransportError("Transport is not open", url=self.url)
        self._spawn(self._ws.send(data)).add_done_callback(self._log_send_failure)

    def _log_send_failure(self, task: "asyncio.Future[Any]") -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("[Transport] Send failed: %s", exc)

    def _close_late_connection(self, connecting: "asyncio.Future[Any]") -> None:
        """Close a handshake that completed after close() cancelled the run task."""
        if connecting.cancelled() or connecting.exception() is not None:
            return
        logger.debug("[Transport] Closing connection opened after close()")
        self._spawn(connecting.result().close())

    def close(self, code: int = 1000, reason: str = "") -> None:
        if self._state in (ConnectionState.CLOSING, ConnectionState.DISCONNECTED):
            return
        if self._ws is None:
            self._state = ConnectionState.CLOSING
            self._task.cancel()
            return
        self._state = ConnectionState.CLOSING
        self._spawn(self._close(code, reason))

    async def _close(self, code: int, reason: str) -> None:
        try:
            await self._ws.close(code, reason)
        except Exception as e:
            logger.debug("[Transport] Error closing connection: %s", e)
        self._state = ConnectionState.DISCONNECTED


def websockets_transport_factory(url: str, handlers: TransportHandlers) -> Transport:
    """Default factory used by the channel manager."""
    return WebsocketsTransport(url, handlers)
