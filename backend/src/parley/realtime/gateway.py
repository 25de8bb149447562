"""Realtime gateway: chat rooms, typing indicators and presence for one process."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Iterable

from app.config import get_settings
from app.monitoring.metrics import (
    membership_cache_lookups_total,
    realtime_connections,
    realtime_events_total,
    realtime_room_subscriptions,
)
from app.services.membership import MembershipCheck, verify_membership

from .cache import MembershipCache
from .registry import Connection, PresenceRegistry, RoomRegistry

logger = logging.getLogger(__name__)

MembershipLookup = Callable[[int, int], MembershipCheck]

PRESENCE_ONLINE = "online"
PRESENCE_OFFLINE = "offline"


class JoinResult(str, Enum):
    JOINED = "joined"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"


def lookup_membership(chat_id: int, user_id: int) -> MembershipCheck:
    """Durable membership check in a short-lived session."""

    from app.database import get_db_session

    with get_db_session() as db:
        return verify_membership(chat_id, user_id, db)


def error_event(message: str, chat_id: Any = None) -> dict[str, Any]:
    return {"type": "error", "message": message, "chat_id": chat_id}


class RealtimeGateway:
    """Own every piece of in-memory realtime state.

    Rooms, presence and the membership cache are reachable only through
    these methods.
    """

    def __init__(
        self,
        *,
        cache_ttl_seconds: float = 5.0,
        membership_lookup: MembershipLookup | None = None,
        cache: MembershipCache | None = None,
    ) -> None:
        self._rooms = RoomRegistry()
        self._presence = PresenceRegistry()
        self._cache = cache or MembershipCache(cache_ttl_seconds)
        self._lookup = membership_lookup or lookup_membership

    @classmethod
    def from_settings(cls) -> "RealtimeGateway":
        settings = get_settings()
        return cls(cache_ttl_seconds=settings.realtime_membership_cache_ttl_seconds)

    @property
    def membership_cache(self) -> MembershipCache:
        return self._cache

    # -- presence ---------------------------------------------------------

    async def connect(self, connection: Connection) -> None:
        """Register an authenticated connection and announce the user if they just came online."""

        became_online = await self._presence.add(connection)
        realtime_connections.inc()
        logger.info(
            "User %s connected (%d open connections)",
            connection.user_id,
            self._presence.connection_count(connection.user_id),
        )
        await self._send(
            connection,
            {"type": "presence:initial_state", "user_ids": self._presence.online_user_ids()},
        )
        if became_online:
            await self._announce_presence(connection.user_id, PRESENCE_ONLINE, exclude=connection)

    async def disconnect(self, connection: Connection) -> None:
        """Drop every trace of the connection, however it ended."""

        left = await self._rooms.leave_all(connection)
        if left:
            realtime_room_subscriptions.dec(len(left))
        went_offline = await self._presence.remove(connection)
        realtime_connections.dec()
        logger.info("User %s disconnected", connection.user_id)
        if went_offline:
            await self._announce_presence(connection.user_id, PRESENCE_OFFLINE)

    async def _announce_presence(self, user_id: int, status: str, *, exclude: Connection | None = None) -> None:
        payload = {"type": "presence:update", "user_id": user_id, "status": status}
        for connection in self._presence.all_connections():
            if connection is exclude:
                continue
            await self._send(connection, payload)

    def online_user_ids(self) -> list[int]:
        return self._presence.online_user_ids()

    def is_online(self, user_id: int) -> bool:
        return self._presence.is_online(user_id)

    # -- rooms ------------------------------------------------------------

    def _check_membership(self, user_id: int, chat_id: int) -> bool | None:
        """Cached membership decision; None means the chat does not exist."""

        cached = self._cache.get(user_id, chat_id)
        if cached is not None:
            membership_cache_lookups_total.labels("hit").inc()
            return cached
        membership_cache_lookups_total.labels("miss").inc()
        check = self._lookup(chat_id, user_id)
        if check.chat is None:
            return None
        self._cache.put(user_id, chat_id, check.is_member)
        return check.is_member

    async def join_chat(self, connection: Connection, chat_id: int) -> JoinResult:
        realtime_events_total.labels("join_chat", "in").inc()
        is_member = self._check_membership(connection.user_id, chat_id)
        if is_member is None:
            await self.send_error(connection, "Chat not found", chat_id)
            return JoinResult.NOT_FOUND
        if not is_member:
            await self.send_error(connection, "Not a member of this chat", chat_id)
            return JoinResult.FORBIDDEN
        if await self._rooms.join(chat_id, connection):
            realtime_room_subscriptions.inc()
        await self._send(connection, {"type": "joined_chat", "chat_id": chat_id})
        return JoinResult.JOINED

    async def leave_chat(self, connection: Connection, chat_id: int) -> None:
        realtime_events_total.labels("leave_chat", "in").inc()
        if await self._rooms.leave(chat_id, connection):
            realtime_room_subscriptions.dec()
        await self._send(connection, {"type": "left_chat", "chat_id": chat_id})

    def joined_chats(self, connection: Connection) -> frozenset[int]:
        return self._rooms.rooms_of(connection)

    def connected_user_ids(self, chat_id: int) -> set[int]:
        return {connection.user_id for connection in self._rooms.connections(chat_id)}

    def forget_membership(self, *, user_id: int | None = None, chat_id: int | None = None) -> None:
        self._cache.invalidate(user_id=user_id, chat_id=chat_id)

    async def revoke_access(self, user_id: int, chat_ids: Iterable[int]) -> int:
        """Cut a user who lost membership off from ``chat_ids``.

        Cached decisions for the user are dropped and every one of their
        connections subscribed to one of the rooms is unsubscribed and told so
        with ``left_chat``. Returns the number of subscriptions removed.
        """

        self._cache.invalidate(user_id=user_id)
        removed = 0
        for chat_id in chat_ids:
            for connection in self._rooms.connections(chat_id):
                if connection.user_id != user_id:
                    continue
                if await self._rooms.leave(chat_id, connection):
                    realtime_room_subscriptions.dec()
                    removed += 1
                    await self._send(connection, {"type": "left_chat", "chat_id": chat_id})
        if removed:
            logger.info("Revoked %d room subscriptions of user %s", removed, user_id)
        return removed

    # -- typing -----------------------------------------------------------

    async def typing(self, connection: Connection, chat_id: int, *, active: bool = True) -> bool:
        """Relay a typing signal to the other users in the room."""

        event = "user_typing" if active else "user_stop_typing"
        realtime_events_total.labels("typing" if active else "stop_typing", "in").inc()
        if not self._rooms.is_joined(chat_id, connection):
            await self.send_error(connection, "Join the chat before sending typing updates", chat_id)
            return False

        payload: dict[str, Any] = {"type": event, "chat_id": chat_id, "user_id": connection.user_id}
        if active:
            payload["login"] = connection.login
            payload["display_name"] = connection.display_name
        own = [c for c in self._rooms.connections(chat_id) if c.user_id == connection.user_id]
        await self._rooms.broadcast(chat_id, payload, exclude=own)
        realtime_events_total.labels(event, "out").inc()
        return True

    # -- outbound ---------------------------------------------------------

    async def emit_to_chat(self, chat_id: int, event: str, payload: dict[str, Any]) -> int:
        """Broadcast a server event to everyone in a chat room."""

        delivered = await self._rooms.broadcast(chat_id, {"type": event, **payload})
        realtime_events_total.labels(event, "out").inc()
        return delivered

    async def send_error(self, connection: Connection, message: str, chat_id: Any = None) -> None:
        realtime_events_total.labels("error", "out").inc()
        await self._send(connection, error_event(message, chat_id))

    async def _send(self, connection: Connection, payload: dict[str, Any]) -> bool:
        sent = await connection.send(payload)
        if not sent:
            logger.debug("Dropped %s for user %s", payload.get("type"), connection.user_id)
        return sent

    async def close(self) -> None:
        for connection in self._presence.all_connections():
            try:
                await connection.websocket.close(code=1001)
            except RuntimeError:
                logger.debug("Websocket for user %s already closed", connection.user_id)


_gateway: RealtimeGateway | None = None


def get_gateway() -> RealtimeGateway:
    global _gateway
    if _gateway is None:
        _gateway = RealtimeGateway.from_settings()
    return _gateway


def set_gateway(gateway: RealtimeGateway | None) -> None:
    global _gateway
    _gateway = gateway


async def startup_realtime() -> None:
    gateway = get_gateway()
    logger.info("Realtime gateway ready (membership cache TTL %.1fs)", gateway.membership_cache.ttl)


async def shutdown_realtime() -> None:
    if _gateway is not None:
        await _gateway.close()
