"""WebSocket endpoint for realtime chat events."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Dict, TypeVar

import anyio
from fastapi import APIRouter, WebSocket, status
from fastapi.exceptions import HTTPException
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from app.api.deps import get_user_from_token
from app.config import get_settings
from app.database import get_db_session
from parley.realtime import Connection, get_gateway, safe_send_json

router = APIRouter(tags=["ws"])

settings = get_settings()

logger = logging.getLogger(__name__)

T = TypeVar("T")

SEND_MESSAGE_DEPRECATED = "send_message is no longer supported; send messages through the HTTP API"


async def iter_keepalive_messages(
    websocket: WebSocket,
    receiver: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float | int | None,
    ping_interval_seconds: float | int | None,
    ping_payload: Dict[str, Any] | None = None,
) -> AsyncIterator[T]:
    """Yield messages from *receiver* while sending keepalive pings when idle."""

    ping_payload = ping_payload or {"type": "ping"}
    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    interval = float(ping_interval_seconds) if ping_interval_seconds else 0.0
    last_activity = time.monotonic()
    last_ping_sent: float | None = None

    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(receiver(), timeout=timeout)
            else:
                message = await receiver()
        except asyncio.TimeoutError:
            if websocket.application_state != WebSocketState.CONNECTED:
                break
            now = time.monotonic()
            idle_long_enough = interval <= 0 or (
                now - last_activity >= interval and (last_ping_sent is None or now - last_ping_sent >= interval)
            )
            if idle_long_enough:
                if not await safe_send_json(websocket, ping_payload):
                    break
                last_ping_sent = now
            continue
        except (RuntimeError, WebSocketDisconnect):
            break
        else:
            last_activity = time.monotonic()
            last_ping_sent = None
            yield message


async def _resolve_connection(websocket: WebSocket) -> Connection | None:
    """Authenticate the handshake; closes with 1008 before accept on failure."""

    token = websocket.query_params.get("token")
    if not token:
        auth_header = websocket.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.removeprefix("Bearer ").strip()
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Authentication required")
        return None

    try:
        with get_db_session() as db:
            user = get_user_from_token(token, db)
            return Connection(
                websocket=websocket,
                user_id=user.id,
                login=user.login,
                display_name=user.public_name,
            )
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid token")
        return None


def _parse_chat_id(payload: dict[str, Any]) -> int | None:
    value = payload.get("chat_id")
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return None


async def _handle_event(connection: Connection, payload: dict[str, Any]) -> None:
    gateway = get_gateway()
    event = payload.get("type")

    if event == "ping":
        await connection.send({"type": "pong"})
        return
    if event == "pong":
        return

    if event not in {"join_chat", "leave_chat", "typing", "stop_typing", "send_message"}:
        await gateway.send_error(connection, f"Unknown event type: {event}", payload.get("chat_id"))
        return

    chat_id = _parse_chat_id(payload)
    if chat_id is None:
        await gateway.send_error(connection, "chat_id must be an integer", payload.get("chat_id"))
        return

    if event == "join_chat":
        await gateway.join_chat(connection, chat_id)
    elif event == "leave_chat":
        await gateway.leave_chat(connection, chat_id)
    elif event == "typing":
        await gateway.typing(connection, chat_id, active=True)
    elif event == "stop_typing":
        await gateway.typing(connection, chat_id, active=False)
    else:
        await gateway.send_error(connection, SEND_MESSAGE_DEPRECATED, chat_id)


@router.websocket("/ws")
async def websocket_events(websocket: WebSocket) -> None:
    """Single multiplexed realtime connection per client."""

    connection = await _resolve_connection(websocket)
    if connection is None:
        return

    await websocket.accept()
    gateway = get_gateway()
    await gateway.connect(connection)
    try:
        async for raw_message in iter_keepalive_messages(
            websocket,
            websocket.receive_text,
            timeout_seconds=settings.websocket_keepalive_timeout_seconds,
            ping_interval_seconds=settings.websocket_keepalive_ping_interval_seconds,
        ):
            if raw_message.strip().lower() == "ping":
                await connection.send({"type": "pong"})
                continue
            try:
                payload = json.loads(raw_message)
            except json.JSONDecodeError:
                await gateway.send_error(connection, "Invalid message format")
                continue
            if not isinstance(payload, dict):
                await gateway.send_error(connection, "Message payload must be a JSON object")
                continue
            try:
                await _handle_event(connection, payload)
            except Exception:
                logger.exception("Failed to handle %s from user %s", payload.get("type"), connection.user_id)
                await gateway.send_error(connection, "Internal error", payload.get("chat_id"))
    finally:
        # Cleanup must finish even when the server cancels the connection task
        with anyio.CancelScope(shield=True):
            await gateway.disconnect(connection)
