from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from typing import Set
import asyncio
import json
import logging

from ..core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()

KEEPALIVE_SECONDS = 30.0


class ConnectionManager:
    """Tracks WebSocket clients and fans scanner events out to them."""

    def __init__(self):
        self.active_connections: Set[WebSocket] = set()

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.add(websocket)

    def disconnect(self, websocket: WebSocket):
        self.active_connections.discard(websocket)

    @staticmethod
    def _encode(event_type: str, data: dict) -> str:
        return json.dumps({"type": event_type, "data": data}, default=str)

    async def broadcast(self, event_type: str, data: dict):
        """Send an event to every client, dropping the ones that went away."""
        message = self._encode(event_type, data)
        disconnected = set()
        for connection in self.active_connections:
            try:
                await connection.send_text(message)
            except (WebSocketDisconnect, RuntimeError, OSError):
                disconnected.add(connection)

        if disconnected:
            logger.debug(f"Dropping {len(disconnected)} closed WebSocket clients")
        self.active_connections -= disconnected

    async def send_personal(self, websocket: WebSocket, event_type: str, data: dict):
        await websocket.send_text(self._encode(event_type, data))


manager = ConnectionManager()


async def scanner_callback(event_type: str, data: dict):
    """Scanner and authorization events go to every WebSocket client."""
    await manager.broadcast(event_type, data)


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Push scan and authorization events; answers "ping" and "status" requests."""
    from ..main import scanner

    await manager.connect(websocket)
    try:
        await manager.send_personal(websocket, "connected", {
            "message": f"Connected to {settings.APP_NAME} WebSocket",
            "auth": scanner.auth_status,
        })

        while True:
            try:
                data = await asyncio.wait_for(websocket.receive_text(), timeout=KEEPALIVE_SECONDS)
            except asyncio.TimeoutError:
                await manager.send_personal(websocket, "ping", {})
                continue

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                continue

            msg_type = message.get("type")
            if msg_type == "ping":
                await manager.send_personal(websocket, "pong", {})
            elif msg_type == "status":
                await manager.send_personal(websocket, "status", {
                    "auth": scanner.auth_status,
                    "source": scanner.source.name,
                    "devices": len(scanner.devices),
                })

    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)
