"""Schemas for communities, their channels and invites."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, conint, constr

from app.schemas.users import PublicUser


class CommunityCreate(BaseModel):
    """Payload for creating a community."""

    name: constr(strip_whitespace=True, min_length=1, max_length=128) = Field(
        ..., description="Community display name"
    )
    icon_url: constr(strip_whitespace=True, max_length=512) | None = None


class CommunitySummary(BaseModel):
    """Community entry in the caller's community list."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    icon_url: str | None = None
    owner_id: int | None = None
    member_count: int = 0
    created_at: datetime


class ChannelRead(BaseModel):
    """Channel belonging to a community."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    community_id: int
    name: str | None = None
    created_at: datetime


class CommunityMemberRead(BaseModel):
    """Roster entry with user details."""

    user: PublicUser
    joined_at: datetime
    is_owner: bool = False


class CommunityDetail(CommunitySummary):
    """Community with its channels and roster."""

    channels: list[ChannelRead] = Field(default_factory=list)
    members: list[CommunityMemberRead] = Field(default_factory=list)


class ChannelCreate(BaseModel):
    """Payload for creating or renaming a channel."""

    name: constr(strip_whitespace=True, min_length=1, max_length=128) = Field(
        ..., description="Channel name"
    )


class OwnershipTransferResult(BaseModel):
    success: bool = True
    owner_id: int


class InviteCreate(BaseModel):
    """Payload for creating an invite code."""

    max_uses: conint(ge=1) | None = Field(
        default=None, description="Number of redemptions allowed; unlimited when omitted"
    )


class InviteRead(BaseModel):
    """Invite as returned to its creator."""

    model_config = ConfigDict(from_attributes=True)

    code: str
    community_id: int
    uses: int
    max_uses: int | None = None
    created_at: datetime


class InviteInfo(BaseModel):
    """Public information about an invite code."""

    code: str
    community_id: int
    community_name: str
    community_icon_url: str | None = None
    member_count: int
    uses: int
    max_uses: int | None = None


class InviteJoinResult(BaseModel):
    """Outcome of redeeming an invite."""

    success: bool = True
    community_id: int
    channel_id: int | None = None
    already_member: bool = False
