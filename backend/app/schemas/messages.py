"""Schemas related to chat messages."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from app.models.enums import MessageType


class MessageSender(BaseModel):
    """Author information; every field but the display name is empty for removed users."""

    id: int | None = None
    login: str | None = None
    display_name: str
    avatar_url: str | None = None


class ReplyPreview(BaseModel):
    """Snippet of the message being replied to."""

    id: int
    content: str
    sender: MessageSender


class ReactionRead(BaseModel):
    """Single (user, emoji) reaction on a message."""

    emoji: str
    user_id: int
    login: str
    display_name: str


class MessageRead(BaseModel):
    """Serialized representation of a chat message."""

    id: int
    chat_id: int
    content: str
    type: MessageType
    metadata: dict[str, Any] | None = None
    reply_to: int | None = None
    reply_to_message: ReplyPreview | None = None
    reactions: list[ReactionRead] = Field(default_factory=list)
    created_at: datetime
    edited_at: datetime | None = None
    deleted_at: datetime | None = None
    sender: MessageSender


class PinnedMessageRead(BaseModel):
    """Pinned message combined with pin metadata."""

    chat_id: int
    message_id: int
    pinned_at: datetime
    pinned_by: MessageSender
    message: MessageRead


class MessageCreate(BaseModel):
    """Payload for sending a message.

    ``type`` stays a plain string so unsupported values are reported as a
    400 by the message service rather than a schema error.
    """

    content: str | None = Field(default=None, description="Message text; required for text messages")
    type: str = Field(default=MessageType.TEXT.value, description="One of text, image, video, file, voice, gif, sticker")
    metadata: dict[str, Any] | None = Field(default=None, description="Client supplied structured data")
    reply_to: int | None = Field(default=None, description="Identifier of the message being replied to")


class MessageUpdate(BaseModel):
    """Payload for editing message content."""

    content: str | None = None


class ReactionRequest(BaseModel):
    """Payload for adding a reaction."""

    emoji: str | None = Field(default=None, max_length=32)


class OperationResult(BaseModel):
    """Plain success flag returned by state-changing endpoints."""

    success: bool = True
