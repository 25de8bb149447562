"""Short-lived cache of membership decisions used by the realtime gateway."""

from __future__ import annotations

import threading
import time
from typing import Callable


class MembershipCache:
    """Remember (user, chat) membership decisions for a fixed TTL.

    Lookups never touch the database and never suspend. Expired entries are
    dropped on read, after which the caller falls back to the durable check.
    """

    def __init__(self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._store: dict[tuple[int, int], tuple[bool, float]] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, user_id: int, chat_id: int) -> bool | None:
        key = (user_id, chat_id)
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            is_member, expires_at = entry
            if expires_at <= self._clock():
                self._store.pop(key, None)
                return None
            return is_member

    def put(self, user_id: int, chat_id: int, is_member: bool) -> None:
        if self._ttl <= 0:
            return
        with self._lock:
            self._store[(user_id, chat_id)] = (is_member, self._clock() + self._ttl)

    def invalidate(self, *, user_id: int | None = None, chat_id: int | None = None) -> None:
        with self._lock:
            if user_id is None and chat_id is None:
                self._store.clear()
                return
            for key in list(self._store):
                if (user_id is None or key[0] == user_id) and (chat_id is None or key[1] == chat_id):
                    self._store.pop(key, None)

    def __len__(self) -> int:
        return len(self._store)
