from fastapi import WebSocket
from typing import Set
import asyncio
import logging

logger = logging.getLogger("mandalamind.websocket")


class ConnectionManager:
    def __init__(self):
        self.active_connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def count(self) -> int:
        return len(self.active_connections)

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        async with self._lock:
            self.active_connections.add(websocket)
        logger.info(f"🔌 WebSocket client connected: {self.count} active")

    async def disconnect(self, websocket: WebSocket):
        async with self._lock:
            self.active_connections.discard(websocket)
        logger.info(f"❌ WebSocket client disconnected: {self.count} active")

    async def send_json(self, websocket: WebSocket, message: dict) -> bool:
        """Send to one client; a client that cannot be reached is dropped."""
        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.warning(f"Dropping WebSocket client after failed send: {e!r}")
            await self.disconnect(websocket)
            return False

    async def broadcast_json(self, message: dict):
        """Send message to all active clients."""
        to_remove = []
        for ws in list(self.active_connections):
            try:
                await ws.send_json(message)
            except Exception:
                to_remove.append(ws)
        for ws in to_remove:
            await self.disconnect(ws)
