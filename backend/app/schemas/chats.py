"""Schemas for direct and group chats."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, constr

from app.models.enums import ChatKind
from app.schemas.users import PublicUser


class ChatMemberRead(BaseModel):
    user: PublicUser
    nickname: str | None = None
    joined_at: datetime


class ChatSummary(BaseModel):
    """Entry in the caller's chat list."""

    id: int
    kind: ChatKind
    name: str | None = None
    nickname: str | None = None
    member_count: int = 0
    last_message: str | None = None
    last_message_at: datetime | None = None
    created_at: datetime


class ChatDetail(BaseModel):
    """Chat with its roster."""

    id: int
    kind: ChatKind
    name: str | None = None
    created_by_id: int | None = None
    created_at: datetime
    members: list[ChatMemberRead] = Field(default_factory=list)
    existing: bool = False


class GroupChatCreate(BaseModel):
    """Payload for creating a group chat."""

    name: constr(strip_whitespace=True, min_length=1, max_length=128)
    member_ids: list[int] = Field(default_factory=list, description="Users to add besides the creator")


class DirectChatCreate(BaseModel):
    """Payload for opening a direct chat."""

    user_id: int


class ChatMemberAdd(BaseModel):
    user_id: int


class NicknameUpdate(BaseModel):
    """Set or clear the caller's nickname within a chat."""

    nickname: constr(strip_whitespace=True, max_length=64) | None = None
