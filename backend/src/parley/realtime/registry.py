"""Process-local bookkeeping of websocket connections, chat rooms and presence."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Set

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

logger = logging.getLogger(__name__)


async def safe_send_json(websocket: WebSocket, data: dict[str, Any]) -> bool:
    """Send JSON through the websocket, returning False if the peer is gone."""

    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as exc:
        logger.debug("Failed to send websocket message: %s", exc)
        return False


@dataclass(eq=False, slots=True)
class Connection:
    """An authenticated websocket owned by one user."""

    websocket: WebSocket
    user_id: int
    login: str
    display_name: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    async def send(self, payload: dict[str, Any]) -> bool:
        return await safe_send_json(self.websocket, payload)


class RoomRegistry:
    """Track which connections subscribed to which chat rooms."""

    def __init__(self) -> None:
        self._rooms: Dict[int, Set[Connection]] = defaultdict(set)
        self._subscriptions: Dict[Connection, Set[int]] = defaultdict(set)
        self._send_locks: Dict[int, asyncio.Lock] = {}
        self._lock = asyncio.Lock()

    async def join(self, chat_id: int, connection: Connection) -> bool:
        async with self._lock:
            if connection in self._rooms[chat_id]:
                return False
            self._rooms[chat_id].add(connection)
            self._subscriptions[connection].add(chat_id)
            return True

    async def leave(self, chat_id: int, connection: Connection) -> bool:
        async with self._lock:
            return self._discard(chat_id, connection)

    async def leave_all(self, connection: Connection) -> list[int]:
        async with self._lock:
            chat_ids = sorted(self._subscriptions.pop(connection, set()))
            for chat_id in chat_ids:
                self._discard(chat_id, connection)
            return chat_ids

    def _discard(self, chat_id: int, connection: Connection) -> bool:
        members = self._rooms.get(chat_id)
        if not members or connection not in members:
            return False
        members.discard(connection)
        if not members:
            self._rooms.pop(chat_id, None)
            lock = self._send_locks.get(chat_id)
            if lock is not None and not lock.locked():
                self._send_locks.pop(chat_id, None)
        rooms = self._subscriptions.get(connection)
        if rooms is not None:
            rooms.discard(chat_id)
            if not rooms:
                self._subscriptions.pop(connection, None)
        return True

    def is_joined(self, chat_id: int, connection: Connection) -> bool:
        return connection in self._rooms.get(chat_id, ())

    def connections(self, chat_id: int) -> list[Connection]:
        return list(self._rooms.get(chat_id, ()))

    def rooms_of(self, connection: Connection) -> frozenset[int]:
        return frozenset(self._subscriptions.get(connection, ()))

    def subscription_count(self) -> int:
        return sum(len(members) for members in self._rooms.values())

    async def broadcast(
        self,
        chat_id: int,
        payload: dict[str, Any],
        *,
        exclude: Iterable[Connection] | None = None,
    ) -> int:
        """Send ``payload`` to every connection in the room; returns the number delivered.

        Sends to one room are serialized so that events reach every member in
        the order their broadcasts started.
        """

        if not self._rooms.get(chat_id):
            return 0
        lock = self._send_locks.setdefault(chat_id, asyncio.Lock())
        excluded = set(exclude or ())
        delivered = 0
        async with lock:
            for connection in self.connections(chat_id):
                if connection in excluded:
                    continue
                if await connection.send(payload):
                    delivered += 1
        # The room may have emptied while we were sending
        if not self._rooms.get(chat_id) and self._send_locks.get(chat_id) is lock and not lock.locked():
            self._send_locks.pop(chat_id, None)
        return delivered

    def send_lock_count(self) -> int:
        return len(self._send_locks)


class PresenceRegistry:
    """Map each online user to the set of their open connections."""

    def __init__(self) -> None:
        self._connections: Dict[int, Set[Connection]] = {}
        self._lock = asyncio.Lock()

    async def add(self, connection: Connection) -> bool:
        """Register a connection; True when the user just came online."""

        async with self._lock:
            bucket = self._connections.setdefault(connection.user_id, set())
            became_online = not bucket
            bucket.add(connection)
            return became_online

    async def remove(self, connection: Connection) -> bool:
        """Unregister a connection; True when it was the user's last one."""

        async with self._lock:
            bucket = self._connections.get(connection.user_id)
            if not bucket or connection not in bucket:
                return False
            bucket.discard(connection)
            if bucket:
                return False
            self._connections.pop(connection.user_id, None)
            return True

    def online_user_ids(self) -> list[int]:
        return sorted(self._connections)

    def connection_count(self, user_id: int) -> int:
        return len(self._connections.get(user_id, ()))

    def is_online(self, user_id: int) -> bool:
        return user_id in self._connections

    def all_connections(self) -> list[Connection]:
        return [connection for bucket in self._connections.values() for connection in bucket]
