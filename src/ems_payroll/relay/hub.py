"""In-memory registry of authenticated WebSocket connections."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from fastapi import WebSocket

from ems_payroll.auth import SessionUser

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    """One accepted socket and the user it authenticated as."""

    websocket: WebSocket
    user: SessionUser
    id: str = field(default_factory=lambda: uuid4().hex)


class ConnectionHub:
    """Role-based fan-out over the currently connected sockets.

    Nothing is queued: a message reaches whoever is connected at the moment
    it is broadcast. A socket that fails to receive is dropped.
    """

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    @property
    def admin_count(self) -> int:
        return sum(1 for c in self._connections.values() if c.user.is_admin)

    @property
    def employee_count(self) -> int:
        return len(self) - self.admin_count

    def register(self, websocket: WebSocket, user: SessionUser) -> Connection:
        connection = Connection(websocket=websocket, user=user)
        self._connections[connection.id] = connection
        logger.info(
            "Client connected: %s user=%s admin=%s (%d open)",
            connection.id,
            user.id,
            user.is_admin,
            len(self),
        )
        return connection

    def unregister(self, connection_id: str) -> None:
        if self._connections.pop(connection_id, None) is not None:
            logger.info("Client disconnected: %s (%d open)", connection_id, len(self))

    async def send(self, connection: Connection, message: dict[str, Any]) -> bool:
        """Send to one socket, dropping it on failure."""
        try:
            await connection.websocket.send_json(message)
        except Exception:
            logger.warning("Send to %s failed, dropping socket", connection.id, exc_info=True)
            self.unregister(connection.id)
            return False
        return True

    async def broadcast(
        self,
        message: dict[str, Any],
        *,
        admin: bool = False,
        employee: bool = False,
    ) -> int:
        """Send to admin and/or employee sockets. Returns the number delivered."""
        targets = [
            c
            for c in list(self._connections.values())
            if (admin and c.user.is_admin) or (employee and not c.user.is_admin)
        ]
        delivered = 0
        for connection in targets:
            if await self.send(connection, message):
                delivered += 1
        return delivered

    async def broadcast_all(self, message: dict[str, Any]) -> int:
        return await self.broadcast(message, admin=True, employee=True)

    async def close_all(self) -> None:
        for connection in list(self._connections.values()):
            try:
                await connection.websocket.close()
            except Exception:
                logger.debug("Socket %s already closed", connection.id)
            self.unregister(connection.id)
