"""Community invitation API endpoints."""

from __future__ import annotations

import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.api.communities import general_channel
from app.api.deps import get_community_member, get_community_or_404, get_current_user, require_community_member
from app.database import get_db
from app.models import Community, CommunityInvite, CommunityMember, User
from app.schemas import InviteCreate, InviteInfo, InviteJoinResult, InviteRead

router = APIRouter(prefix="/invites", tags=["invites"])

logger = logging.getLogger(__name__)


def _generate_invite_code(db: Session) -> str:
    for _ in range(10):
        candidate = secrets.token_urlsafe(6)
        existing = db.execute(select(CommunityInvite.id).where(CommunityInvite.code == candidate)).scalar_one_or_none()
        if existing is None:
            return candidate
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Unable to generate unique invite code",
    )


def _get_invite_or_404(code: str, db: Session) -> CommunityInvite:
    invite = db.execute(select(CommunityInvite).where(CommunityInvite.code == code)).scalar_one_or_none()
    if invite is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invite not found")
    return invite


@router.post("/community/{community_id}", response_model=InviteRead, status_code=status.HTTP_201_CREATED)
def create_invite(
    community_id: int,
    payload: InviteCreate | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> InviteRead:
    """Any member may invite others, optionally capping the number of uses."""

    community = get_community_or_404(community_id, db)
    require_community_member(community.id, current_user.id, db)

    invite = CommunityInvite(
        community_id=community.id,
        code=_generate_invite_code(db),
        created_by_id=current_user.id,
        uses=0,
        max_uses=payload.max_uses if payload is not None else None,
    )
    db.add(invite)
    db.commit()
    db.refresh(invite)
    return InviteRead.model_validate(invite)


@router.get("/{code}", response_model=InviteInfo)
def read_invite(code: str, db: Session = Depends(get_db)) -> InviteInfo:
    """Public invite preview; no authentication required."""

    invite = _get_invite_or_404(code, db)
    community = db.get(Community, invite.community_id)
    member_count = db.execute(
        select(func.count(CommunityMember.id)).where(CommunityMember.community_id == invite.community_id)
    ).scalar_one()
    return InviteInfo(
        code=invite.code,
        community_id=invite.community_id,
        community_name=community.name,
        community_icon_url=community.icon_url,
        member_count=int(member_count),
        uses=invite.uses,
        max_uses=invite.max_uses,
    )


@router.post("/{code}/join", response_model=InviteJoinResult)
def join_with_invite(
    code: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> InviteJoinResult:
    """Redeem an invite.

    Consuming a use and inserting the membership happen in one transaction.
    The use counter only moves through a conditional update, so two
    redemptions racing for the last slot cannot both succeed.
    """

    invite = _get_invite_or_404(code, db)
    community_id = invite.community_id

    if get_community_member(community_id, current_user.id, db) is not None:
        return InviteJoinResult(success=True, community_id=community_id, already_member=True)

    consumed = db.execute(
        update(CommunityInvite)
        .where(
            CommunityInvite.id == invite.id,
            or_(CommunityInvite.max_uses.is_(None), CommunityInvite.uses < CommunityInvite.max_uses),
        )
        .values(uses=CommunityInvite.uses + 1)
        .execution_options(synchronize_session=False)
    )
    if consumed.rowcount == 0:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Invite has reached max uses")

    db.add(CommunityMember(community_id=community_id, user_id=current_user.id))
    try:
        db.commit()
    except IntegrityError:
        # The same user joined through a concurrent request; the use is given back.
        db.rollback()
        return InviteJoinResult(success=True, community_id=community_id, already_member=True)

    logger.info("User %s joined community %s with invite %s", current_user.id, community_id, code)
    channel = general_channel(community_id, db)
    return InviteJoinResult(
        success=True,
        community_id=community_id,
        channel_id=channel.id if channel is not None else None,
    )
