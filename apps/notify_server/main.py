"""
Notification Server - /ws hub plus a few HTTP endpoints to drive it.
"""

import asyncio
import logging
import os
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict

from apps.notify_server.hub import SWEEP_INTERVAL, NotificationHub
from wms import __version__

logger = logging.getLogger(__name__)

hub = NotificationHub()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the hub liveness sweep for the lifetime of the server."""
    interval = float(os.getenv("WMS_HUB_SWEEP_INTERVAL", str(SWEEP_INTERVAL)))
    sweeper = asyncio.create_task(hub.run_sweeper(interval))
    logger.info("[Server] Notification server started")
    yield
    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass
    logger.info("[Server] Notification server stopped")


app = FastAPI(
    title="WMS Notification Server",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    clients: int


class NotificationTestRequest(BaseModel):
    type: str


class BroadcastRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str


class BroadcastResponse(BaseModel):
    success: bool
    delivered: int
    message: str = ""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@app.get("/api/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse(
        status="ok",
        timestamp=_utc_now(),
        version=__version__,
        clients=hub.client_count,
    )


@app.post("/api/test-notification", response_model=BroadcastResponse)
async def send_test_notification(request: NotificationTestRequest):
    kind = request.type
    if kind not in ("success", "warning", "error"):
        raise HTTPException(status_code=400, detail="Invalid notification type")

    notification: Dict[str, Any] = {
        "id": uuid.uuid4().hex[:13],
        "title": f"Test {kind.capitalize()} Notification",
        "message": f"This is a test {kind} notification with sound alert.",
        "type": kind,
        "timestamp": _utc_now(),
        "read": False,
    }
    delivered = await hub.broadcast({"type": "notification", "notification": notification})
    return BroadcastResponse(success=True, delivered=delivered, message="Test notification sent")


@app.post("/api/broadcast", response_model=BroadcastResponse)
async def broadcast_message(request: BroadcastRequest):
    delivered = await hub.broadcast(request.model_dump())
    return BroadcastResponse(success=True, delivered=delivered)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await hub.serve(websocket)
