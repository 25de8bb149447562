"""Registration, login and token handling."""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import HTTPException

from app.core.security import create_access_token, decode_access_token, get_password_hash, verify_password


def test_register_and_login_flow(client):
    response = client.post(
        "/api/auth/register",
        json={"login": "Alice", "password": "wonderland", "display_name": "Alice"},
    )
    assert response.status_code == 201
    data = response.json()
    assert data["login"] == "alice"
    assert data["display_name"] == "Alice"
    assert "hashed_password" not in data

    login_response = client.post("/api/auth/login", json={"login": "ALICE", "password": "wonderland"})
    assert login_response.status_code == 200
    token_data = login_response.json()
    assert token_data["token_type"] == "bearer"
    assert token_data["expires_in"] > 0

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token_data['access_token']}"})
    assert me.status_code == 200
    assert me.json()["id"] == data["id"]


def test_duplicate_login_is_rejected(client, register):
    register("bob")
    response = client.post("/api/auth/register", json={"login": "BOB", "password": "another1"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Login is already taken"


def test_wrong_password_is_unauthorized(client, register):
    register("carol", password="correct-horse")
    response = client.post("/api/auth/login", json={"login": "carol", "password": "battery-staple"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Incorrect login or password"


def test_protected_route_requires_valid_token(client):
    assert client.get("/api/auth/me").status_code == 401
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Could not validate credentials"


def test_token_for_removed_user_is_rejected(client):
    token = create_access_token({"sub": "9999"})
    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_profile_update_keeps_omitted_fields(client, register):
    user = register("dave", display_name="Dave")
    response = client.patch(
        "/api/auth/me",
        json={"avatar_url": "https://cdn.example.com/dave.png"},
        headers=user.headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["avatar_url"] == "https://cdn.example.com/dave.png"
    assert body["display_name"] == "Dave"


def test_expired_token_is_reported():
    token = create_access_token({"sub": "1"}, expires_delta=timedelta(seconds=-5))
    with pytest.raises(HTTPException) as excinfo:
        decode_access_token(token)
    assert excinfo.value.status_code == 401
    assert excinfo.value.detail == "Token has expired"


def test_password_hash_roundtrip():
    hashed = get_password_hash("s3cret!")
    assert hashed != "s3cret!"
    assert verify_password("s3cret!", hashed)
    assert not verify_password("wrong", hashed)
