"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

ROOT_DIR = Path(__file__).resolve().parents[1]
for path in (ROOT_DIR, ROOT_DIR / "src"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app import database
from app.core.rate_limit import RateLimiter, set_rate_limiter
from app.core.security import create_access_token, get_password_hash
from app.database import get_db
from app.main import app
from app.models import Base, Chat, ChatKind, ChatMember, Community, CommunityMember, User
from app.monitoring.registry import registry
from app.services.notifications import NotificationDispatcher, set_notification_dispatcher
from parley.realtime import RealtimeGateway, set_gateway


@dataclass
class AuthedUser:
    id: int
    login: str
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def test_engine() -> Iterator[Engine]:
    """Provide an in-memory SQLite engine for isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(test_engine, monkeypatch) -> sessionmaker[Session]:
    """Session factory bound to the test engine, also used by websocket and background code."""

    factory = sessionmaker(bind=test_engine, autoflush=False, future=True)
    monkeypatch.setattr(database, "SessionLocal", factory)
    return factory


@pytest.fixture()
def db_session(session_factory) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def realtime_state() -> Iterator[RealtimeGateway]:
    """Fresh gateway, disabled notifications and rate limits, and zeroed metrics for every test."""

    gateway = RealtimeGateway(cache_ttl_seconds=5)
    set_gateway(gateway)
    set_notification_dispatcher(NotificationDispatcher(None, enabled=False))
    set_rate_limiter(RateLimiter(enabled=False))
    registry.reset()
    try:
        yield gateway
    finally:
        set_gateway(None)
        set_notification_dispatcher(None)
        set_rate_limiter(None)


@pytest.fixture()
def client(session_factory) -> Iterator[TestClient]:
    """Yield a FastAPI TestClient with the database dependency overridden."""

    def override_get_db() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def register(client) -> Callable[..., AuthedUser]:
    """Register a user through the API and log them in."""

    def _register(login: str, password: str = "secret123", display_name: str | None = None) -> AuthedUser:
        response = client.post(
            "/api/auth/register",
            json={"login": login, "password": password, "display_name": display_name},
        )
        assert response.status_code == 201, response.text
        user_id = response.json()["id"]
        response = client.post("/api/auth/login", json={"login": login, "password": password})
        assert response.status_code == 200, response.text
        return AuthedUser(id=user_id, login=login, token=response.json()["access_token"])

    return _register


@pytest.fixture()
def make_user(db_session) -> Callable[..., User]:
    """Insert a user row directly."""

    def _make(login: str, display_name: str | None = None) -> User:
        user = User(login=login, display_name=display_name, hashed_password=get_password_hash("secret123"))
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture()
def token_for() -> Callable[[int], str]:
    return lambda user_id: create_access_token({"sub": str(user_id)})


@pytest.fixture()
def make_direct_chat(db_session) -> Callable[..., Chat]:
    def _make(*users: User) -> Chat:
        chat = Chat(kind=ChatKind.DIRECT)
        db_session.add(chat)
        db_session.flush()
        db_session.add_all([ChatMember(chat_id=chat.id, user_id=user.id) for user in users])
        db_session.commit()
        return chat

    return _make


@pytest.fixture()
def make_group_chat(db_session) -> Callable[..., Chat]:
    def _make(name: str, *users: User) -> Chat:
        chat = Chat(kind=ChatKind.GROUP, name=name)
        db_session.add(chat)
        db_session.flush()
        db_session.add_all([ChatMember(chat_id=chat.id, user_id=user.id) for user in users])
        db_session.commit()
        return chat

    return _make


@pytest.fixture()
def make_community(db_session) -> Callable[..., tuple[Community, Chat]]:
    """Create a community owned by the first user with a ``general`` channel."""

    def _make(name: str, owner: User, *members: User) -> tuple[Community, Chat]:
        community = Community(name=name, owner_id=owner.id)
        db_session.add(community)
        db_session.flush()
        db_session.add_all(
            [CommunityMember(community_id=community.id, user_id=user.id) for user in (owner, *members)]
        )
        channel = Chat(kind=ChatKind.CHANNEL, name="general", community_id=community.id)
        db_session.add(channel)
        db_session.commit()
        return community, channel

    return _make
