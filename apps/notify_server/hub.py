"""
NotificationHub - server side of the /ws channel.

Keeps the set of connected operator sockets, greets each one, answers
application pings and fans business messages out to every client. A
periodic sweep pings every client and terminates the ones that stayed
silent since the previous sweep.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Dict

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)

SWEEP_INTERVAL = 30.0
GREETING = "Connected to notification server"


def _now_ms() -> int:
    return int(time.time() * 1000)


class NotificationHub:
    """Broadcast hub for connected WebSocket clients."""

    def __init__(self):
        # socket -> alive since the last sweep
        self._clients: Dict[WebSocket, bool] = {}

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def serve(self, websocket: WebSocket) -> None:
        """Accept ``websocket`` and handle its frames until it disconnects."""
        await websocket.accept()
        self._clients[websocket] = True
        logger.info("[Hub] Client connected. Total clients: %d", self.client_count)

        try:
            await websocket.send_json(
                {"type": "connection", "message": GREETING, "timestamp": _now_ms()}
            )
            while True:
                text = await websocket.receive_text()
                await self.handle_frame(websocket, text)
        except WebSocketDisconnect:
            pass
        finally:
            self._clients.pop(websocket, None)
            logger.info("[Hub] Client disconnected. Total clients: %d", self.client_count)

    async def handle_frame(self, websocket: WebSocket, text: str) -> None:
        # Any frame, even a malformed one, proves the client is alive
        if websocket in self._clients:
            self._clients[websocket] = True

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning("[Hub] Error parsing message: %s", e)
            return

        if isinstance(data, dict) and data.get("type") == "ping":
            await websocket.send_json({"type": "pong", "timestamp": _now_ms()})

    async def broadcast(self, message: Dict[str, Any]) -> int:
        """
        Send ``message`` to every open client.

        Returns:
            Number of clients that received it. Clients that fail are dropped.
        """
        text = json.dumps(message, default=str)
        delivered = 0
        for websocket in list(self._clients):
            if websocket.client_state is not WebSocketState.CONNECTED:
                self._clients.pop(websocket, None)
                continue
            try:
                await websocket.send_text(text)
                delivered += 1
            except Exception as e:
                logger.warning("[Hub] Dropping client after send failure: %s", e)
                self._clients.pop(websocket, None)
        logger.debug("[Hub] Broadcast %s to %d client(s)", message.get("type"), delivered)
        return delivered

    async def sweep(self) -> int:
        """
        One liveness pass.

        Clients that sent nothing since the previous pass are closed and
        dropped. The rest are marked silent and pinged.

        Returns:
            Number of clients dropped
        """
        dropped = 0
        ping = json.dumps({"type": "ping", "timestamp": _now_ms()})
        for websocket, alive in list(self._clients.items()):
            if not alive or websocket.client_state is not WebSocketState.CONNECTED:
                logger.info("[Hub] Terminating inactive client")
                self._clients.pop(websocket, None)
                dropped += 1
                try:
                    await websocket.close(code=1001)
                except Exception as e:
                    logger.debug("[Hub] Error closing inactive client: %s", e)
                continue

            self._clients[websocket] = False
            try:
                await websocket.send_text(ping)
            except Exception as e:
                logger.warning("[Hub] Dropping client after ping failure: %s", e)
                self._clients.pop(websocket, None)
                dropped += 1
        return dropped

    async def run_sweeper(self, interval: float = SWEEP_INTERVAL) -> None:
        """Sweep every ``interval`` seconds until cancelled."""
        logger.info("[Hub] Liveness sweep every %.0fs", interval)
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("[Hub] Liveness sweep failed")
