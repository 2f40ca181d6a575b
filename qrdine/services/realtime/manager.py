"""
Connection & Room Membership Tracker

Tracks live WebSocket connections and which rooms each one has joined.
A connection belongs to no room until the client explicitly joins one;
authentication never implies membership.
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from typing import Any, Optional, Protocol

from qrdine.services.realtime.rooms import RoomKey

logger = logging.getLogger(__name__)


class JsonSocket(Protocol):
    async def send_json(self, data: Any) -> None: ...


class Connection:
    """
    One live client connection.

    Sends are serialized through a per-connection lock so frames reach the
    client in emission order even when broadcasts overlap.
    """

    def __init__(self, websocket: JsonSocket, connection_id: Optional[str] = None):
        self.websocket = websocket
        self.id = connection_id or uuid.uuid4().hex[:12]
        self.rooms: set[RoomKey] = set()
        self._send_lock = asyncio.Lock()

    async def send(self, event: str, payload: Any) -> None:
        async with self._send_lock:
            await self.websocket.send_json({"event": event, "data": payload})

    def __repr__(self):
        return f"<Connection {self.id} rooms={sorted(str(r) for r in self.rooms)}>"


class ConnectionManager:
    """In-process registry of connections and room membership."""

    def __init__(self):
        self._connections: dict[str, Connection] = {}
        self._rooms: dict[RoomKey, dict[str, Connection]] = defaultdict(dict)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def connect(self, connection: Connection) -> Connection:
        self._connections[connection.id] = connection
        logger.info(f"Client connected: {connection.id}")
        return connection

    def disconnect(self, connection: Connection) -> None:
        """Drop a connection from every room. Safe to call twice."""
        for room in list(connection.rooms):
            self._remove_member(room, connection)
        connection.rooms.clear()
        if self._connections.pop(connection.id, None) is not None:
            logger.info(f"Client disconnected: {connection.id}")

    def join(self, connection: Connection, room: RoomKey) -> None:
        if connection.id not in self._connections:
            raise ValueError(f"Connection {connection.id} is not registered")
        self._rooms[room][connection.id] = connection
        connection.rooms.add(room)
        logger.info(f"Socket {connection.id} joined room: {room}")

    def leave(self, connection: Connection, room: RoomKey) -> None:
        self._remove_member(room, connection)
        connection.rooms.discard(room)
        logger.info(f"Socket {connection.id} left room: {room}")

    def members(self, room: RoomKey) -> list[Connection]:
        return list(self._rooms.get(room, {}).values())

    def all_connections(self) -> list[Connection]:
        return list(self._connections.values())

    def is_member(self, connection: Connection, room: RoomKey) -> bool:
        return connection.id in self._rooms.get(room, {})

    def _remove_member(self, room: RoomKey, connection: Connection) -> None:
        members = self._rooms.get(room)
        if not members:
            return
        members.pop(connection.id, None)
        if not members:
            del self._rooms[room]
