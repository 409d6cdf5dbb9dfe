"""
WebSocket relay for client cache invalidation.

Clients announce changes (``{"type": "unit_update"}`` and friends) and the
relay fans every message out to all open connections. The server pushes
the same messages after its own writes. Delivery is best effort: a
connection that fails to receive is dropped.
"""

import json
from typing import Any, Dict, List

import structlog
from fastapi import APIRouter, WebSocket

logger = structlog.get_logger()

MESSAGE_TYPES = (
    "resource_update",
    "territory_update",
    "structure_update",
    "unit_update",
    "event",
)


class ConnectionManager:
    """Tracks open sockets and broadcasts to them."""

    def __init__(self):
        self.active_connections: List[WebSocket] = []

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info("Client connected to WebSocket", connections=len(self.active_connections))

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
            logger.info("Client disconnected from WebSocket", connections=len(self.active_connections))

    async def broadcast(self, message: Dict[str, Any]) -> int:
        """
        Send a message to every open connection.

        Returns:
            Number of connections that received it
        """
        delivered = 0
        for connection in list(self.active_connections):
            try:
                await connection.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning("Dropping WebSocket connection after failed send", error=str(e))
                self.disconnect(connection)
        return delivered

    async def notify(self, message_type: str, country_id: str) -> int:
        """
        Push a server-side invalidation message.

        Raises:
            ValueError: message_type is not one clients listen for
        """
        if message_type not in MESSAGE_TYPES:
            raise ValueError(f"Unknown message type: {message_type}")
        return await self.broadcast({"type": message_type, "country_id": country_id})


manager = ConnectionManager()

router = APIRouter()


@router.websocket("/ws")
async def websocket_relay(websocket: WebSocket):
    """Relay every JSON text message to all connected clients."""
    await manager.connect(websocket)
    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                break

            raw = frame.get("text")
            if raw is None:
                logger.warning("Ignoring non-text WebSocket frame")
                continue
            try:
                message = json.loads(raw)
            except json.JSONDecodeError as e:
                logger.warning("WebSocket message error", error=str(e))
                continue

            if isinstance(message, dict) and message.get("type") not in MESSAGE_TYPES:
                logger.debug("Relaying unrecognised message type", type=message.get("type"))
            await manager.broadcast(message)
    finally:
        manager.disconnect(websocket)
