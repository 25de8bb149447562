"""Database models package."""

from .base import Base
from .chat import (
    Chat,
    ChatMember,
    Community,
    CommunityInvite,
    CommunityMember,
    FriendLink,
    Message,
    MessageReaction,
    MessageReceipt,
    PinnedMessage,
    PushToken,
    User,
    UserBlock,
)
from .enums import ChatKind, FriendRequestStatus, MessageType

__all__ = [
    "Base",
    "User",
    "Community",
    "CommunityMember",
    "CommunityInvite",
    "Chat",
    "ChatMember",
    "Message",
    "MessageReaction",
    "MessageReceipt",
    "PinnedMessage",
    "PushToken",
    "FriendLink",
    "UserBlock",
    "ChatKind",
    "MessageType",
    "FriendRequestStatus",
]
