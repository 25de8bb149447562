from __future__ import annotations

import pytest

from app.config import Settings
from app.core.rate_limit import (
    LOGIN,
    RateLimiter,
    RateLimitExceeded,
    RateRule,
    get_rate_limiter,
    set_rate_limiter,
)
from app.monitoring.metrics import rate_limited_requests_total


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def enable_limits():
    """Switch rate limiting on from the point of the call."""

    def _enable() -> RateLimiter:
        limiter = RateLimiter(enabled=True)
        set_rate_limiter(limiter)
        return limiter

    return _enable


def test_window_slides_per_key():
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)
    rule = RateRule("burst", 2, 60, "Easy there")

    limiter.hit(rule, "a")
    clock.now += 30
    limiter.hit(rule, "a")
    limiter.hit(rule, "b")
    with pytest.raises(RateLimitExceeded) as excinfo:
        limiter.hit(rule, "a")
    assert excinfo.value.retry_after_seconds == 30
    assert str(excinfo.value) == "Easy there"

    clock.now += 30
    limiter.hit(rule, "a")
    with pytest.raises(RateLimitExceeded):
        limiter.hit(rule, "a")
    assert rate_limited_requests_total.value("burst") == 2


def test_disabled_limiter_never_rejects():
    limiter = RateLimiter(enabled=False)
    for _ in range(LOGIN.limit * 3):
        limiter.hit(LOGIN, "127.0.0.1")
    assert len(limiter) == 0


def test_stale_buckets_are_swept(monkeypatch):
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)
    monkeypatch.setattr(RateLimiter, "SWEEP_THRESHOLD", 3)
    rule = RateRule("burst", 1, 10, "Easy there")
    for key in ("a", "b", "c"):
        limiter.hit(rule, key)
    clock.now += 11
    limiter.hit(rule, "d")
    assert len(limiter) == 1


def test_limits_are_off_in_the_test_environment():
    assert Settings(environment="test").rate_limiting_active is False
    assert Settings(environment="production").rate_limiting_active is True
    assert Settings(environment="test", rate_limit_enabled=True).rate_limiting_active is True


def test_default_limiter_follows_settings(monkeypatch):
    set_rate_limiter(None)
    monkeypatch.setenv("ENVIRONMENT", "test")
    from app.config import get_settings

    get_settings.cache_clear()
    try:
        assert get_rate_limiter().enabled is False
    finally:
        get_settings.cache_clear()


def test_login_attempts_are_limited_per_address(client, register, enable_limits):
    register("alice")
    enable_limits()

    for _ in range(LOGIN.limit):
        response = client.post("/api/auth/login", json={"login": "alice", "password": "wrong-one"})
        assert response.status_code == 401
    blocked = client.post("/api/auth/login", json={"login": "alice", "password": "secret123"})
    assert blocked.status_code == 429
    assert blocked.json() == {"detail": "Too many login attempts, please wait a minute before trying again."}
    assert 1 <= int(blocked.headers["Retry-After"]) <= 60


def test_registrations_are_limited_per_address(client, enable_limits):
    enable_limits()
    for login in ("one", "two", "three"):
        response = client.post("/api/auth/register", json={"login": login, "password": "secret123"})
        assert response.status_code == 201
    response = client.post("/api/auth/register", json={"login": "four", "password": "secret123"})
    assert response.status_code == 429
    assert response.json()["detail"] == "Too many accounts created, please try again in an hour."


def test_message_sends_are_limited_per_user(client, register, enable_limits):
    alice = register("alice")
    bob = register("bob")
    chat_id = client.post("/api/chats/dm", json={"user_id": bob.id}, headers=alice.headers).json()["id"]
    enable_limits()

    for index in range(30):
        response = client.post(f"/api/messages/{chat_id}", json={"content": f"#{index}"}, headers=alice.headers)
        assert response.status_code == 201
    response = client.post(f"/api/messages/{chat_id}", json={"content": "one more"}, headers=alice.headers)
    assert response.status_code == 429
    assert response.json()["detail"] == "Slow down! Too many messages sent."

    assert client.post(f"/api/messages/{chat_id}", json={"content": "hi"}, headers=bob.headers).status_code == 201
    history = client.get(f"/api/messages/{chat_id}?limit=100", headers=bob.headers).json()
    assert len(history) == 31


def test_friend_requests_are_limited_per_user(client, register, enable_limits):
    alice = register("alice")
    register("bob")
    enable_limits()

    for _ in range(20):
        assert client.post("/api/friends/requests", json={"login": "ghost"}, headers=alice.headers).status_code == 404
    response = client.post("/api/friends/requests", json={"login": "bob"}, headers=alice.headers)
    assert response.status_code == 429
    assert response.json()["detail"] == "Too many friend requests sent. Please wait before sending more."
    assert rate_limited_requests_total.value("friend_request") == 1
