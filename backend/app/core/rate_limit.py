"""In-process sliding window rate limiting for abuse-prone endpoints."""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Tuple

from app.config import get_settings
from app.monitoring.metrics import rate_limited_requests_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateRule:
    name: str
    limit: int
    window_seconds: float
    message: str


LOGIN = RateRule("login", 5, 60, "Too many login attempts, please wait a minute before trying again.")
REGISTER = RateRule("register", 3, 60 * 60, "Too many accounts created, please try again in an hour.")
MESSAGE_SEND = RateRule("message_send", 30, 60, "Slow down! Too many messages sent.")
FRIEND_REQUEST = RateRule(
    "friend_request", 20, 60 * 60, "Too many friend requests sent. Please wait before sending more."
)


class RateLimitExceeded(Exception):
    def __init__(self, rule: RateRule, retry_after_seconds: int) -> None:
        super().__init__(rule.message)
        self.rule = rule
        self.retry_after_seconds = retry_after_seconds


class RateLimiter:
    """Count hits per (rule, key) inside a sliding window.

    Every accepted hit is recorded; a hit that would exceed the rule's limit
    raises :class:`RateLimitExceeded` and is not recorded.
    """

    # Buckets are swept for expired keys once there are this many
    SWEEP_THRESHOLD = 10_000

    def __init__(self, *, enabled: bool = True, clock: Callable[[], float] = time.monotonic) -> None:
        self.enabled = enabled
        self._clock = clock
        self._hits: Dict[Tuple[str, str], Deque[float]] = {}
        self._windows: Dict[str, float] = {}
        self._lock = threading.Lock()

    def hit(self, rule: RateRule, key: str) -> None:
        if not self.enabled:
            return
        now = self._clock()
        with self._lock:
            if len(self._hits) >= self.SWEEP_THRESHOLD:
                self._sweep(now)
            self._windows[rule.name] = rule.window_seconds
            bucket = self._hits.setdefault((rule.name, key), deque())
            while bucket and bucket[0] <= now - rule.window_seconds:
                bucket.popleft()
            if len(bucket) >= rule.limit:
                retry_after = max(1, math.ceil(bucket[0] + rule.window_seconds - now))
                rate_limited_requests_total.labels(rule.name).inc()
                logger.warning("Rate limit %s exceeded for %s", rule.name, key)
                raise RateLimitExceeded(rule, retry_after)
            bucket.append(now)

    def _sweep(self, now: float) -> None:
        for bucket_key in list(self._hits):
            bucket = self._hits[bucket_key]
            window = self._windows.get(bucket_key[0], 0)
            if not bucket or bucket[-1] <= now - window:
                del self._hits[bucket_key]

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()

    def __len__(self) -> int:
        return len(self._hits)


_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter(enabled=get_settings().rate_limiting_active)
    return _rate_limiter


def set_rate_limiter(limiter: RateLimiter | None) -> None:
    global _rate_limiter
    _rate_limiter = limiter
