"""In-process realtime layer: rooms, presence, typing and membership caching."""

from .cache import MembershipCache  # noqa: F401
from .gateway import (  # noqa: F401
    JoinResult,
    RealtimeGateway,
    error_event,
    get_gateway,
    set_gateway,
    shutdown_realtime,
    startup_realtime,
)
from .registry import Connection, PresenceRegistry, RoomRegistry, safe_send_json  # noqa: F401

__all__ = [
    "Connection",
    "JoinResult",
    "MembershipCache",
    "PresenceRegistry",
    "RealtimeGateway",
    "RoomRegistry",
    "error_event",
    "get_gateway",
    "safe_send_json",
    "set_gateway",
    "shutdown_realtime",
    "startup_realtime",
]
