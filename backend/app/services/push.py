"""Expo push delivery."""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, Callable, Protocol, Sequence

import httpx
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models import PushToken
from app.monitoring.metrics import push_deliveries_total

logger = logging.getLogger(__name__)

EXPO_TOKEN_PREFIXES = ("ExponentPushToken[", "ExpoPushToken[")
DEVICE_NOT_REGISTERED = "DeviceNotRegistered"

SessionFactory = Callable[[], AbstractContextManager[Session]]


def is_expo_push_token(token: str | None) -> bool:
    if not token:
        return False
    return token.startswith(EXPO_TOKEN_PREFIXES) and token.endswith("]")


class PushSender(Protocol):
    """Anything able to deliver one notification to a set of users."""

    async def send(self, user_ids: Sequence[int], title: str, body: str, data: dict[str, Any]) -> None:
        ...


@dataclass(slots=True)
class PushReport:
    sent: int = 0
    failed: int = 0
    removed_tokens: int = 0


def _default_session_factory() -> AbstractContextManager[Session]:
    from app.database import get_db_session

    return get_db_session()


class ExpoPushClient:
    """Deliver notifications through the Expo push API.

    Tokens are read from ``push_tokens``; tokens reported as
    ``DeviceNotRegistered`` are deleted.
    """

    def __init__(
        self,
        *,
        url: str,
        access_token: str | None = None,
        timeout: float = 10.0,
        chunk_size: int = 100,
        session_factory: SessionFactory | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._access_token = access_token
        self._timeout = timeout
        self._chunk_size = max(1, chunk_size)
        self._session_factory = session_factory or _default_session_factory
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "ExpoPushClient":
        settings = get_settings()
        return cls(
            url=str(settings.expo_push_url),
            access_token=settings.expo_access_token,
            timeout=settings.push_request_timeout_seconds,
            chunk_size=settings.push_chunk_size,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    def _load_tokens(self, user_ids: Sequence[int]) -> list[str]:
        with self._session_factory() as db:
            tokens = db.execute(select(PushToken.token).where(PushToken.user_id.in_(list(user_ids)))).scalars().all()
        return sorted({token for token in tokens if is_expo_push_token(token)})

    def _forget_tokens(self, tokens: Sequence[str]) -> None:
        with self._session_factory() as db:
            db.execute(delete(PushToken).where(PushToken.token.in_(list(tokens))))
            db.commit()
        logger.info("Removed %d unregistered push tokens", len(tokens))

    @staticmethod
    def build_message(token: str, title: str, body: str, data: dict[str, Any]) -> dict[str, Any]:
        return {
            "to": token,
            "sound": "default",
            "title": title,
            "body": body,
            "data": data,
            "badge": 1,
            "channelId": "default",
        }

    async def send(self, user_ids: Sequence[int], title: str, body: str, data: dict[str, Any]) -> PushReport:
        report = PushReport()
        if not user_ids:
            return report
        tokens = self._load_tokens(user_ids)
        if not tokens:
            logger.debug("No push tokens for users %s", list(user_ids))
            return report

        messages = [self.build_message(token, title, body, data) for token in tokens]
        stale: list[str] = []
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            for start in range(0, len(messages), self._chunk_size):
                chunk = messages[start : start + self._chunk_size]
                try:
                    response = await client.post(self._url, json=chunk, headers=self._headers())
                    response.raise_for_status()
                    payload = response.json()
                except (httpx.HTTPError, ValueError) as exc:
                    logger.warning("Push chunk of %d messages failed: %s", len(chunk), exc)
                    report.failed += len(chunk)
                    push_deliveries_total.labels("transport_error").inc(len(chunk))
                    continue

                tickets = payload.get("data", []) if isinstance(payload, dict) else []
                for message, ticket in zip(chunk, tickets):
                    if ticket.get("status") == "ok":
                        report.sent += 1
                        push_deliveries_total.labels("ok").inc()
                        continue
                    report.failed += 1
                    push_deliveries_total.labels("error").inc()
                    details = ticket.get("details") or {}
                    logger.warning("Push to %s rejected: %s", message["to"], ticket.get("message"))
                    if details.get("error") == DEVICE_NOT_REGISTERED:
                        stale.append(message["to"])

        if stale:
            self._forget_tokens(stale)
            report.removed_tokens = len(stale)
        return report
