"""Fan-out of store change notifications to WebSocket clients."""

import json
import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Clients subscribed to the change feed."""

    def __init__(self) -> None:
        self.clients: list[WebSocket] = []

    @property
    def client_count(self) -> int:
        return len(self.clients)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.clients.append(websocket)
        logger.info(f"[ConnectionManager] {self.client_count} client(s) listening for changes")

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket not in self.clients:
            return
        self.clients.remove(websocket)
        logger.info(f"[ConnectionManager] Client left, {self.client_count} remaining")

    async def notify_change(self, reason: str) -> int:
        """Tell every client that the store changed, and why."""
        return await self.broadcast({"type": "changed", "reason": reason})

    async def broadcast(self, message: dict[str, Any]) -> int:
        """Send message as JSON to every client; returns how many received it.

        A client whose send fails is dropped.
        """
        payload = json.dumps(message)
        delivered = 0
        for client in list(self.clients):
            try:
                await client.send_text(payload)
            except Exception as e:
                logger.warning(f"[ConnectionManager] Dropping client after failed send: {e}")
                self.disconnect(client)
            else:
                delivered += 1
        logger.debug(f"[ConnectionManager] {message.get('type')} delivered to {delivered} client(s)")
        return delivered
