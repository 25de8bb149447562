"""Schemas related to user profiles and friendships."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, constr

from app.models.enums import FriendRequestStatus


class PublicUser(BaseModel):
    """Minimal public-facing user information."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    login: str
    display_name: str | None = None
    avatar_url: str | None = None


class FriendRequestRead(BaseModel):
    """Serialized friend request including participants."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    requester: PublicUser
    addressee: PublicUser
    status: FriendRequestStatus
    created_at: datetime
    responded_at: datetime | None = None


class FriendRequestList(BaseModel):
    """Categorized friend requests for convenience in the UI."""

    incoming: list[FriendRequestRead] = Field(default_factory=list)
    outgoing: list[FriendRequestRead] = Field(default_factory=list)


class FriendRequestCreate(BaseModel):
    """Payload for sending a friend request."""

    login: constr(strip_whitespace=True, min_length=1, max_length=64) = Field(..., description="Target user login")


class BlockedUserRead(BaseModel):
    """A user hidden by the current user."""

    user: PublicUser
    blocked_at: datetime


class FriendshipStatus(BaseModel):
    """Relationship between the current user and someone else."""

    status: Literal["friends", "request_sent", "request_received", "blocked", "none"]
    request_id: int | None = None
