"""Top-level exception handlers classifying storage failures."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError, DisconnectionError, IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from app.config import get_settings
from app.core.rate_limit import RateLimitExceeded

logger = logging.getLogger(__name__)

UNAVAILABLE_DETAIL = "Database is temporarily unavailable. Please try again."
CONFLICT_DETAIL = "Data conflict occurred"
INTERNAL_DETAIL = "Internal Server Error"
RETRY_AFTER_SECONDS = 1

# Lower-cased fragments of driver messages that mean "try again later"
_TRANSIENT_MARKERS = (
    "database is locked",
    "database is busy",
    "database table is locked",
    "deadlock",
    "lock wait timeout",
    "lost connection",
    "server has gone away",
    "can't connect",
    "connection refused",
    "too many connections",
)


def is_transient_storage_error(exc: BaseException) -> bool:
    """Return True when ``exc`` signals busy, locked or unreachable storage."""

    if isinstance(exc, (DisconnectionError, PoolTimeoutError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    if isinstance(exc, OperationalError):
        message = str(exc.orig if exc.orig is not None else exc).lower()
        return any(marker in message for marker in _TRANSIENT_MARKERS)
    return False


def _unavailable_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": UNAVAILABLE_DETAIL},
        headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
    )


def _internal_response(exc: Exception) -> JSONResponse:
    content: dict[str, str] = {"detail": INTERNAL_DETAIL}
    if get_settings().show_error_details:
        content["error"] = f"{type(exc).__name__}: {exc}"
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"detail": exc.rule.message},
            headers={"Retry-After": str(exc.retry_after_seconds)},
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
        logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": CONFLICT_DETAIL})

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
        if is_transient_storage_error(exc):
            logger.warning("Storage unavailable on %s %s: %s", request.method, request.url.path, exc.orig)
            return _unavailable_response()
        logger.exception("Storage failure on %s %s", request.method, request.url.path)
        return _internal_response(exc)

    @app.exception_handler(DisconnectionError)
    async def disconnection_error_handler(request: Request, exc: DisconnectionError) -> JSONResponse:
        logger.warning("Storage connection lost on %s %s", request.method, request.url.path)
        return _unavailable_response()

    @app.exception_handler(PoolTimeoutError)
    async def pool_timeout_handler(request: Request, exc: PoolTimeoutError) -> JSONResponse:
        logger.warning("Connection pool exhausted on %s %s", request.method, request.url.path)
        return _unavailable_response()

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _internal_response(exc)
