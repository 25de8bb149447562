from __future__ import annotations

from enum import Enum


class ChatKind(str, Enum):
    """Variants of a message container."""

    DIRECT = "direct"
    GROUP = "group"
    CHANNEL = "channel"


class MessageType(str, Enum):
    """Supported message payload types."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    FILE = "file"
    VOICE = "voice"
    GIF = "gif"
    STICKER = "sticker"


class FriendRequestStatus(str, Enum):
    """Lifecycle states for friend relationships."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
