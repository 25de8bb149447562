"""Community (server) management: roster, ownership and channels."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from app.api.deps import (
    get_community_member,
    get_community_or_404,
    get_current_user,
    require_community_member,
    require_community_owner,
)
from app.database import get_db
from app.models import Chat, ChatKind, Community, CommunityMember, User
from app.schemas import (
    ChannelCreate,
    ChannelRead,
    CommunityCreate,
    CommunityDetail,
    CommunityMemberRead,
    CommunitySummary,
    OperationResult,
    OwnershipTransferResult,
    PublicUser,
)
from parley.realtime import get_gateway

router = APIRouter(prefix="/communities", tags=["communities"])

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_NAME = "general"


def _member_count(community_id: int, db: Session) -> int:
    stmt = select(func.count(CommunityMember.id)).where(CommunityMember.community_id == community_id)
    return int(db.execute(stmt).scalar_one())


def _summary(community: Community, member_count: int) -> CommunitySummary:
    return CommunitySummary(
        id=community.id,
        name=community.name,
        icon_url=community.icon_url,
        owner_id=community.owner_id,
        member_count=member_count,
        created_at=community.created_at,
    )


def _channels(community_id: int, db: Session) -> list[Chat]:
    stmt = (
        select(Chat)
        .where(Chat.community_id == community_id, Chat.kind == ChatKind.CHANNEL)
        .order_by(Chat.created_at, Chat.id)
    )
    return list(db.execute(stmt).scalars().all())


def general_channel(community_id: int, db: Session) -> Chat | None:
    """The community's default channel, falling back to its oldest channel."""

    channels = _channels(community_id, db)
    for channel in channels:
        if channel.name == DEFAULT_CHANNEL_NAME:
            return channel
    return channels[0] if channels else None


def get_channel_or_404(channel_id: int, db: Session) -> Chat:
    channel = db.get(Chat, channel_id)
    if channel is None or channel.kind != ChatKind.CHANNEL or channel.community_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Channel not found")
    return channel


def rename_channel(channel: Chat, name: str, user: User, db: Session) -> ChannelRead:
    community = get_community_or_404(channel.community_id, db)
    require_community_owner(community, user.id)
    channel.name = name
    db.commit()
    db.refresh(channel)
    return ChannelRead.model_validate(channel)


def remove_channel(channel: Chat, user: User, db: Session) -> None:
    """Delete a channel; the general channel and the last channel are kept."""

    community = get_community_or_404(channel.community_id, db)
    require_community_owner(community, user.id)
    if channel.name == DEFAULT_CHANNEL_NAME:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete the general channel")
    if len(_channels(community.id, db)) <= 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete the last channel")
    channel_id = channel.id
    db.delete(channel)
    db.commit()
    logger.info("Channel %s deleted from community %s by user %s", channel_id, community.id, user.id)


@router.get("", response_model=list[CommunitySummary])
def list_communities(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[CommunitySummary]:
    """Communities the current user belongs to, with member counts."""

    counts = (
        select(CommunityMember.community_id, func.count(CommunityMember.id).label("member_count"))
        .group_by(CommunityMember.community_id)
        .subquery()
    )
    stmt = (
        select(Community, counts.c.member_count)
        .join(CommunityMember, CommunityMember.community_id == Community.id)
        .join(counts, counts.c.community_id == Community.id)
        .where(CommunityMember.user_id == current_user.id)
        .order_by(Community.name, Community.id)
    )
    return [_summary(community, count) for community, count in db.execute(stmt).all()]


@router.post("", response_model=CommunityDetail, status_code=status.HTTP_201_CREATED)
def create_community(
    payload: CommunityCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CommunityDetail:
    """Create a community together with its owner membership and general channel."""

    community = Community(name=payload.name, icon_url=payload.icon_url, owner_id=current_user.id)
    db.add(community)
    try:
        db.flush()
        db.add(CommunityMember(community_id=community.id, user_id=current_user.id))
        db.add(
            Chat(
                kind=ChatKind.CHANNEL,
                name=DEFAULT_CHANNEL_NAME,
                community_id=community.id,
                created_by_id=current_user.id,
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    return read_community(community.id, db=db, current_user=current_user)


@router.get("/{community_id}", response_model=CommunityDetail)
def read_community(
    community_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CommunityDetail:
    community = get_community_or_404(community_id, db)
    require_community_member(community.id, current_user.id, db)

    roster = (
        db.execute(
            select(CommunityMember)
            .where(CommunityMember.community_id == community.id)
            .options(selectinload(CommunityMember.user))
            .order_by(CommunityMember.joined_at, CommunityMember.id)
        )
        .scalars()
        .all()
    )
    summary = _summary(community, len(roster))
    return CommunityDetail(
        **summary.model_dump(),
        channels=[ChannelRead.model_validate(channel) for channel in _channels(community.id, db)],
        members=[
            CommunityMemberRead(
                user=PublicUser.model_validate(member.user),
                joined_at=member.joined_at,
                is_owner=member.user_id == community.owner_id,
            )
            for member in roster
        ],
    )


@router.post("/{community_id}/channels", response_model=ChannelRead, status_code=status.HTTP_201_CREATED)
def create_channel(
    community_id: int,
    payload: ChannelCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ChannelRead:
    community = get_community_or_404(community_id, db)
    require_community_member(community.id, current_user.id, db)

    channel = Chat(
        kind=ChatKind.CHANNEL,
        name=payload.name,
        community_id=community.id,
        created_by_id=current_user.id,
    )
    db.add(channel)
    db.commit()
    db.refresh(channel)
    return ChannelRead.model_validate(channel)


def _community_channel(community_id: int, channel_id: int, db: Session) -> Chat:
    channel = get_channel_or_404(channel_id, db)
    if channel.community_id != community_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Channel not found")
    return channel


@router.put("/{community_id}/channels/{channel_id}", response_model=ChannelRead)
def update_channel(
    community_id: int,
    channel_id: int,
    payload: ChannelCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ChannelRead:
    return rename_channel(_community_channel(community_id, channel_id, db), payload.name, current_user, db)


@router.delete("/{community_id}/channels/{channel_id}", response_model=OperationResult)
def delete_channel(
    community_id: int,
    channel_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> OperationResult:
    remove_channel(_community_channel(community_id, channel_id, db), current_user, db)
    return OperationResult(success=True)


@router.post("/{community_id}/leave", response_model=OperationResult)
async def leave_community(
    community_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> OperationResult:
    community = get_community_or_404(community_id, db)
    membership = require_community_member(community.id, current_user.id, db)
    if community.owner_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Owner must transfer ownership before leaving",
        )
    channel_ids = [channel.id for channel in _channels(community.id, db)]
    db.delete(membership)
    db.commit()
    await get_gateway().revoke_access(current_user.id, channel_ids)
    return OperationResult(success=True)


@router.delete("/{community_id}/members/{user_id}", response_model=OperationResult)
async def kick_member(
    community_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> OperationResult:
    community = get_community_or_404(community_id, db)
    require_community_owner(community, current_user.id)
    if user_id == community.owner_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="The owner cannot be removed")
    membership = get_community_member(community.id, user_id, db)
    if membership is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
    channel_ids = [channel.id for channel in _channels(community.id, db)]
    db.delete(membership)
    db.commit()
    await get_gateway().revoke_access(user_id, channel_ids)
    logger.info("User %s removed from community %s by owner %s", user_id, community.id, current_user.id)
    return OperationResult(success=True)


@router.post("/{community_id}/transfer/{user_id}", response_model=OwnershipTransferResult)
def transfer_ownership(
    community_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> OwnershipTransferResult:
    community = get_community_or_404(community_id, db)
    require_community_owner(community, current_user.id)
    if get_community_member(community.id, user_id, db) is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="New owner must be a member")
    community.owner_id = user_id
    db.commit()
    return OwnershipTransferResult(success=True, owner_id=user_id)
