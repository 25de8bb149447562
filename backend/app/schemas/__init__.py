"""Pydantic schemas for API payloads."""

from .auth import LoginRequest, ProfileUpdate, Token, UserCreate, UserRead
from .chats import (
    ChatDetail,
    ChatMemberAdd,
    ChatMemberRead,
    ChatSummary,
    DirectChatCreate,
    GroupChatCreate,
    NicknameUpdate,
)
from .communities import (
    ChannelCreate,
    ChannelRead,
    CommunityCreate,
    CommunityDetail,
    CommunityMemberRead,
    CommunitySummary,
    InviteCreate,
    InviteInfo,
    InviteJoinResult,
    InviteRead,
    OwnershipTransferResult,
)
from .messages import (
    MessageCreate,
    MessageRead,
    MessageSender,
    MessageUpdate,
    OperationResult,
    PinnedMessageRead,
    ReactionRead,
    ReactionRequest,
    ReplyPreview,
)
from .push import PushTokenRead, PushTokenRegister, PushTokenUnregister
from .users import (
    BlockedUserRead,
    FriendRequestCreate,
    FriendRequestList,
    FriendRequestRead,
    FriendshipStatus,
    PublicUser,
)

__all__ = [
    "LoginRequest",
    "ProfileUpdate",
    "Token",
    "UserCreate",
    "UserRead",
    "PublicUser",
    "FriendRequestCreate",
    "FriendRequestList",
    "FriendRequestRead",
    "FriendshipStatus",
    "BlockedUserRead",
    "ChatDetail",
    "ChatMemberAdd",
    "ChatMemberRead",
    "ChatSummary",
    "DirectChatCreate",
    "GroupChatCreate",
    "NicknameUpdate",
    "ChannelCreate",
    "ChannelRead",
    "CommunityCreate",
    "CommunityDetail",
    "CommunityMemberRead",
    "CommunitySummary",
    "InviteCreate",
    "InviteInfo",
    "InviteJoinResult",
    "InviteRead",
    "OwnershipTransferResult",
    "MessageCreate",
    "MessageRead",
    "MessageSender",
    "MessageUpdate",
    "OperationResult",
    "PinnedMessageRead",
    "ReactionRead",
    "ReactionRequest",
    "ReplyPreview",
    "PushTokenRead",
    "PushTokenRegister",
    "PushTokenUnregister",
]
