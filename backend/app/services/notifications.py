"""Push fan-out for members who are not watching a chat when a message arrives."""

from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractContextManager
from typing import Any, Callable, Iterable

from sqlalchemy.orm import Session

from app.config import get_settings
from app.models import MessageType
from app.schemas.messages import MessageRead
from app.services.membership import ChatRef, chat_label, member_ids
from app.services.push import ExpoPushClient, PushSender

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]


def build_title(sender_name: str, label: str | None) -> str:
    if label:
        return f"{sender_name} in {label}"
    return sender_name


def build_body(content: str, message_type: MessageType | str, preview_length: int) -> str:
    kind = MessageType(message_type)
    if kind != MessageType.TEXT:
        return f"Sent a {kind.value}"
    if len(content) > preview_length:
        return content[:preview_length] + "..."
    return content


def select_recipients(members: Iterable[int], sender_id: int | None, connected: Iterable[int]) -> list[int]:
    """Members minus the sender minus users already connected to the chat room."""

    excluded = set(connected)
    if sender_id is not None:
        excluded.add(sender_id)
    return sorted(set(members) - excluded)


def _default_session_factory() -> AbstractContextManager[Session]:
    from app.database import get_db_session

    return get_db_session()


class NotificationDispatcher:
    """Run push fan-out as background tasks detached from the request.

    ``dispatch`` never raises and never waits; failures inside a task are
    logged and dropped.
    """

    def __init__(
        self,
        sender: PushSender | None,
        *,
        enabled: bool = True,
        preview_length: int = 100,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self._sender = sender
        self._enabled = enabled and sender is not None
        self._preview_length = preview_length
        self._session_factory = session_factory or _default_session_factory
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(self, chat: ChatRef, message: MessageRead, connected_user_ids: Iterable[int]) -> asyncio.Task[None] | None:
        if not self._enabled:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Notification for message %s dropped: no running event loop", message.id)
            return None
        task = loop.create_task(self._deliver(chat, message, frozenset(connected_user_ids)))
        self._pending.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.debug("Notification task cancelled")

    def _members(self, chat: ChatRef) -> list[int]:
        with self._session_factory() as db:
            return member_ids(chat, db)

    async def _deliver(self, chat: ChatRef, message: MessageRead, connected: frozenset[int]) -> None:
        try:
            recipients = select_recipients(self._members(chat), message.sender.id, connected)
            if not recipients:
                return
            title = build_title(message.sender.display_name, chat_label(chat))
            body = build_body(message.content, message.type, self._preview_length)
            data: dict[str, Any] = {"type": "new_message", "chat_id": chat.id, "message_id": message.id}
            await self._sender.send(recipients, title, body, data)
        except Exception:
            logger.exception("Push fan-out for message %s in chat %s failed", message.id, chat.id)

    async def drain(self) -> None:
        """Wait for every in-flight task; used at shutdown and in tests."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


_dispatcher: NotificationDispatcher | None = None


def get_notification_dispatcher() -> NotificationDispatcher:
    global _dispatcher
    if _dispatcher is None:
        settings = get_settings()
        sender = ExpoPushClient.from_settings() if settings.push_notifications_enabled else None
        _dispatcher = NotificationDispatcher(
            sender,
            enabled=settings.push_notifications_enabled,
            preview_length=settings.push_preview_length,
        )
    return _dispatcher


def set_notification_dispatcher(dispatcher: NotificationDispatcher | None) -> None:
    global _dispatcher
    _dispatcher = dispatcher
