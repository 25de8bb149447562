"""Metric definitions for the realtime layer and message lifecycle."""

from __future__ import annotations

from .registry import registry

realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of authenticated websocket connections held by this process.",
)

realtime_room_subscriptions = registry.gauge(
    "realtime_room_subscriptions",
    "Number of (connection, chat room) subscriptions.",
)

realtime_events_total = registry.counter(
    "realtime_events_total",
    "Count of realtime events handled by the gateway.",
    label_names=("event", "direction"),
)

membership_cache_lookups_total = registry.counter(
    "membership_cache_lookups_total",
    "Membership decisions served by the realtime cache, by result.",
    label_names=("result",),
)

message_operations_total = registry.counter(
    "message_operations_total",
    "Message lifecycle operations that changed state.",
    label_names=("action",),
)

push_deliveries_total = registry.counter(
    "push_deliveries_total",
    "Push notification deliveries by outcome.",
    label_names=("outcome",),
)

rate_limited_requests_total = registry.counter(
    "rate_limited_requests_total",
    "Requests rejected with 429, by rule.",
    label_names=("rule",),
)
