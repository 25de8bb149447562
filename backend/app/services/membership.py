"""Membership authority deciding who may read and write a chat.

A chat is one of three variants. Direct and group chats own a roster in
``chat_members``; channels have no roster of their own and inherit the
roster of their community.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import Chat, ChatKind, ChatMember, CommunityMember


@dataclass(frozen=True, slots=True)
class DirectChat:
    id: int


@dataclass(frozen=True, slots=True)
class GroupChat:
    id: int
    name: str | None


@dataclass(frozen=True, slots=True)
class ChannelChat:
    id: int
    name: str | None
    community_id: int


ChatRef = Union[DirectChat, GroupChat, ChannelChat]


@dataclass(frozen=True, slots=True)
class MembershipCheck:
    """Result of a membership lookup; ``chat`` is None when the chat does not exist."""

    is_member: bool
    chat: ChatRef | None


def to_chat_ref(chat: Chat) -> ChatRef:
    """Convert an ORM chat row into its variant."""

    if chat.kind == ChatKind.CHANNEL:
        if chat.community_id is None:
            raise ValueError(f"Channel {chat.id} has no community")
        return ChannelChat(id=chat.id, name=chat.name, community_id=chat.community_id)
    if chat.kind == ChatKind.GROUP:
        return GroupChat(id=chat.id, name=chat.name)
    return DirectChat(id=chat.id)


def resolve_chat(chat_id: int, db: Session) -> ChatRef | None:
    chat = db.get(Chat, chat_id)
    if chat is None:
        return None
    return to_chat_ref(chat)


def is_chat_member(chat: ChatRef, user_id: int, db: Session) -> bool:
    if isinstance(chat, ChannelChat):
        stmt = select(CommunityMember.id).where(
            CommunityMember.community_id == chat.community_id,
            CommunityMember.user_id == user_id,
        )
    else:
        stmt = select(ChatMember.id).where(
            ChatMember.chat_id == chat.id,
            ChatMember.user_id == user_id,
        )
    return db.execute(stmt.limit(1)).first() is not None


def verify_membership(chat_id: int, user_id: int, db: Session) -> MembershipCheck:
    """Decide whether ``user_id`` belongs to ``chat_id``.

    Reads only. Both "no such chat" and "not a member" are reported as data;
    callers distinguish them through ``chat``.
    """

    chat = resolve_chat(chat_id, db)
    if chat is None:
        return MembershipCheck(is_member=False, chat=None)
    return MembershipCheck(is_member=is_chat_member(chat, user_id, db), chat=chat)


def member_ids(chat: ChatRef, db: Session) -> list[int]:
    """Return the ids of every user allowed into ``chat``."""

    if isinstance(chat, ChannelChat):
        stmt = select(CommunityMember.user_id).where(CommunityMember.community_id == chat.community_id)
    else:
        stmt = select(ChatMember.user_id).where(ChatMember.chat_id == chat.id)
    return list(db.execute(stmt).scalars().all())


def chat_label(chat: ChatRef) -> str | None:
    """Context shown after the sender's name in notification titles."""

    if isinstance(chat, ChannelChat):
        return f"#{chat.name}" if chat.name else None
    if isinstance(chat, GroupChat):
        return chat.name
    return None
