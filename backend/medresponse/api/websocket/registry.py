"""
Registry of live real-time connections.

The registry is owned by the application (``app.state.registry``) and handed
to the relay; it knows nothing about users beyond what the upgrade request
authenticated. Each registered connection gets a keep-alive task that sends
``{"type": "ping"}`` on a fixed interval and drops the connection when the
send fails.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Connection(Protocol):
    user_id: Optional[int]

    async def send_json(self, data: dict[str, Any]) -> None: ...


@dataclass(eq=False)
class ClientConnection:
    """One open WebSocket plus whatever identity the upgrade request proved."""
    websocket: WebSocket
    connection_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    user_id: Optional[int] = None  # set only from a verified token
    role: Optional[str] = None
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    async def send_json(self, data: dict[str, Any]) -> None:
        await self.websocket.send_json(data)

    def __repr__(self) -> str:
        return f"<ClientConnection {self.connection_id} user={self.user_id}>"


class ConnectionRegistry:
    def __init__(self, ping_interval: Optional[float] = 30.0):
        self._ping_interval = ping_interval
        self._keepalives: dict[Any, Optional[asyncio.Task]] = {}

    def register(self, connection: Connection) -> None:
        if connection in self._keepalives:
            return
        task = None
        if self._ping_interval:
            task = asyncio.create_task(self._keepalive(connection))
        self._keepalives[connection] = task
        logger.info("Real-time client connected: %r (total: %d)", connection, len(self._keepalives))

    def unregister(self, connection: Connection) -> None:
        if connection not in self._keepalives:
            return
        task = self._keepalives.pop(connection)
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        logger.info("Real-time client disconnected: %r (total: %d)", connection, len(self._keepalives))

    def connections(self) -> list[Connection]:
        """Snapshot of every open connection."""
        return list(self._keepalives)

    def __len__(self) -> int:
        return len(self._keepalives)

    def __contains__(self, connection: object) -> bool:
        return connection in self._keepalives

    async def close_all(self) -> None:
        tasks = [t for t in self._keepalives.values() if t is not None]
        self._keepalives.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _keepalive(self, connection: Connection) -> None:
        while connection in self._keepalives:
            await asyncio.sleep(self._ping_interval)
            try:
                await connection.send_json({"type": "ping"})
            except Exception as e:
                logger.warning("Keep-alive ping failed for %r: %s", connection, e)
                self.unregister(connection)
                return
