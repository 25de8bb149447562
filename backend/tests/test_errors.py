"""Storage error classification and the top-level exception handlers."""

from __future__ import annotations

import sqlite3

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import DisconnectionError, IntegrityError, OperationalError

from app.core.errors import (
    CONFLICT_DETAIL,
    INTERNAL_DETAIL,
    UNAVAILABLE_DETAIL,
    is_transient_storage_error,
    register_exception_handlers,
)


def _operational(message: str) -> OperationalError:
    return OperationalError("SELECT 1", {}, sqlite3.OperationalError(message))


@pytest.fixture()
def failing_client():
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/locked")
    def locked():
        raise _operational("database is locked")

    @app.get("/broken-sql")
    def broken_sql():
        raise _operational("no such table: chats")

    @app.get("/conflict")
    def conflict():
        raise IntegrityError("INSERT", {}, sqlite3.IntegrityError("UNIQUE constraint failed"))

    @app.get("/boom")
    def boom():
        raise RuntimeError("kaboom")

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client


def test_transient_errors_are_recognised():
    assert is_transient_storage_error(_operational("database is locked"))
    assert is_transient_storage_error(_operational("(2013, 'Lost connection to MySQL server during query')"))
    assert is_transient_storage_error(DisconnectionError("gone"))
    assert not is_transient_storage_error(_operational("no such column: foo"))
    assert not is_transient_storage_error(ValueError("database is locked"))


def test_locked_storage_maps_to_503_with_retry_after(failing_client):
    response = failing_client.get("/locked")
    assert response.status_code == 503
    assert response.headers["Retry-After"] == "1"
    assert response.json() == {"detail": UNAVAILABLE_DETAIL}


def test_integrity_error_maps_to_409(failing_client):
    response = failing_client.get("/conflict")
    assert response.status_code == 409
    assert response.json() == {"detail": CONFLICT_DETAIL}


def test_other_failures_map_to_500(failing_client):
    for path in ("/broken-sql", "/boom"):
        response = failing_client.get(path)
        assert response.status_code == 500
        assert response.json()["detail"] == INTERNAL_DETAIL
