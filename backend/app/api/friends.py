"""Friend requests and the friends list."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from app.api.deps import get_current_user, rate_limit_by_user
from app.core.rate_limit import FRIEND_REQUEST
from app.database import get_db
from app.models import FriendLink, FriendRequestStatus, User, UserBlock
from app.schemas import (
    BlockedUserRead,
    FriendRequestCreate,
    FriendRequestList,
    FriendRequestRead,
    FriendshipStatus,
    OperationResult,
    PublicUser,
)

router = APIRouter(prefix="/friends", tags=["friends"])


def _serialize_request(link: FriendLink) -> FriendRequestRead:
    return FriendRequestRead(
        id=link.id,
        requester=PublicUser.model_validate(link.requester),
        addressee=PublicUser.model_validate(link.addressee),
        status=link.status,
        created_at=link.created_at,
        responded_at=link.responded_at,
    )


def _get_friend_link(user_id: int, other_id: int, db: Session) -> FriendLink | None:
    stmt = select(FriendLink).where(
        or_(
            (FriendLink.requester_id == user_id) & (FriendLink.addressee_id == other_id),
            (FriendLink.requester_id == other_id) & (FriendLink.addressee_id == user_id),
        )
    )
    return db.execute(stmt).scalars().first()


def _is_blocked_between(user_id: int, other_id: int, db: Session) -> bool:
    stmt = select(UserBlock.id).where(
        or_(
            (UserBlock.blocker_id == user_id) & (UserBlock.blocked_id == other_id),
            (UserBlock.blocker_id == other_id) & (UserBlock.blocked_id == user_id),
        )
    )
    return db.execute(stmt).first() is not None


def _require_request(request_id: int, db: Session) -> FriendLink:
    stmt = (
        select(FriendLink)
        .where(FriendLink.id == request_id)
        .options(selectinload(FriendLink.requester), selectinload(FriendLink.addressee))
    )
    request = db.execute(stmt).scalar_one_or_none()
    if request is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Friend request not found")
    return request


@router.get("", response_model=list[PublicUser])
def list_friends(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[PublicUser]:
    """Return accepted friends for the current user."""

    stmt = (
        select(FriendLink)
        .where(
            FriendLink.status == FriendRequestStatus.ACCEPTED,
            or_(
                FriendLink.requester_id == current_user.id,
                FriendLink.addressee_id == current_user.id,
            ),
        )
        .options(selectinload(FriendLink.requester), selectinload(FriendLink.addressee))
    )
    friends: list[PublicUser] = []
    for link in db.execute(stmt).scalars().all():
        other = link.addressee if link.requester_id == current_user.id else link.requester
        friends.append(PublicUser.model_validate(other))
    friends.sort(key=lambda friend: (friend.display_name or friend.login).lower())
    return friends


@router.get("/requests", response_model=FriendRequestList)
def list_friend_requests(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FriendRequestList:
    stmt = (
        select(FriendLink)
        .where(
            FriendLink.status == FriendRequestStatus.PENDING,
            or_(
                FriendLink.requester_id == current_user.id,
                FriendLink.addressee_id == current_user.id,
            ),
        )
        .options(selectinload(FriendLink.requester), selectinload(FriendLink.addressee))
        .order_by(FriendLink.created_at.asc(), FriendLink.id.asc())
    )
    incoming: list[FriendRequestRead] = []
    outgoing: list[FriendRequestRead] = []
    for entry in db.execute(stmt).scalars().all():
        if entry.addressee_id == current_user.id:
            incoming.append(_serialize_request(entry))
        else:
            outgoing.append(_serialize_request(entry))
    return FriendRequestList(incoming=incoming, outgoing=outgoing)


@router.post(
    "/requests",
    response_model=FriendRequestRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit_by_user(FRIEND_REQUEST))],
)
def create_friend_request(
    payload: FriendRequestCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FriendRequestRead:
    """Send a friend request by login.

    A previously declined request does not block a new one; it is replaced.
    """

    target = db.execute(select(User).where(User.login == payload.login.lower())).scalar_one_or_none()
    if target is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if target.id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot add yourself")
    if _is_blocked_between(current_user.id, target.id, db):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot send friend request")

    existing = _get_friend_link(current_user.id, target.id, db)
    if existing is not None:
        if existing.status == FriendRequestStatus.ACCEPTED:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Already friends")
        if existing.status == FriendRequestStatus.PENDING:
            if existing.requester_id == current_user.id:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request already sent")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="This user already sent you a request")
        db.delete(existing)
        db.flush()

    link = FriendLink(
        requester_id=current_user.id,
        addressee_id=target.id,
        status=FriendRequestStatus.PENDING,
    )
    db.add(link)
    db.commit()
    db.refresh(link)
    return _serialize_request(link)


@router.post("/requests/{request_id}/accept", response_model=FriendRequestRead)
def accept_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FriendRequestRead:
    request = _require_request(request_id, db)
    if request.addressee_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the recipient can accept")
    if request.status == FriendRequestStatus.ACCEPTED:
        return _serialize_request(request)

    request.status = FriendRequestStatus.ACCEPTED
    request.responded_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(request)
    return _serialize_request(request)


@router.post("/requests/{request_id}/decline", response_model=FriendRequestRead)
def decline_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FriendRequestRead:
    """Decline an incoming request or withdraw an outgoing one."""

    request = _require_request(request_id, db)
    if current_user.id not in (request.addressee_id, request.requester_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
    if request.status != FriendRequestStatus.PENDING:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request is no longer pending")

    request.status = FriendRequestStatus.DECLINED
    request.responded_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(request)
    return _serialize_request(request)


@router.delete("/{user_id}", response_model=OperationResult)
def remove_friend(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> OperationResult:
    link = _get_friend_link(current_user.id, user_id, db)
    if link is None or link.status != FriendRequestStatus.ACCEPTED:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Friend not found")
    db.delete(link)
    db.commit()
    return OperationResult(success=True)


@router.delete("/requests/outgoing/{user_id}", response_model=OperationResult)
def cancel_outgoing_request(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> OperationResult:
    """Withdraw the pending request the current user sent to ``user_id``."""

    stmt = select(FriendLink).where(
        FriendLink.requester_id == current_user.id,
        FriendLink.addressee_id == user_id,
        FriendLink.status == FriendRequestStatus.PENDING,
    )
    link = db.execute(stmt).scalar_one_or_none()
    if link is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Friend request not found")
    db.delete(link)
    db.commit()
    return OperationResult(success=True)


@router.get("/status/{user_id}", response_model=FriendshipStatus)
def friendship_status(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FriendshipStatus:
    link = _get_friend_link(current_user.id, user_id, db)
    if link is not None and link.status == FriendRequestStatus.ACCEPTED:
        return FriendshipStatus(status="friends")
    if link is not None and link.status == FriendRequestStatus.PENDING:
        if link.requester_id == current_user.id:
            return FriendshipStatus(status="request_sent", request_id=link.id)
        return FriendshipStatus(status="request_received", request_id=link.id)

    stmt = select(UserBlock.id).where(UserBlock.blocker_id == current_user.id, UserBlock.blocked_id == user_id)
    if db.execute(stmt).first() is not None:
        return FriendshipStatus(status="blocked")
    return FriendshipStatus(status="none")


@router.get("/blocked", response_model=list[BlockedUserRead])
def list_blocked_users(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[BlockedUserRead]:
    stmt = (
        select(UserBlock)
        .where(UserBlock.blocker_id == current_user.id)
        .options(selectinload(UserBlock.blocked))
        .order_by(UserBlock.created_at.desc(), UserBlock.id.desc())
    )
    return [
        BlockedUserRead(user=PublicUser.model_validate(entry.blocked), blocked_at=entry.created_at)
        for entry in db.execute(stmt).scalars().all()
    ]


@router.post("/block/{user_id}", response_model=OperationResult)
def block_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> OperationResult:
    """Block a user.

    Any friendship or pending request between the two is removed and neither
    side can send a new request until the block is lifted. Blocking twice is
    a no-op.
    """

    if user_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot block yourself")
    if db.get(User, user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    link = _get_friend_link(current_user.id, user_id, db)
    if link is not None:
        db.delete(link)

    stmt = select(UserBlock).where(UserBlock.blocker_id == current_user.id, UserBlock.blocked_id == user_id)
    if db.execute(stmt).scalar_one_or_none() is None:
        db.add(UserBlock(blocker_id=current_user.id, blocked_id=user_id))
    db.commit()
    return OperationResult(success=True)


@router.delete("/block/{user_id}", response_model=OperationResult)
def unblock_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> OperationResult:
    stmt = select(UserBlock).where(UserBlock.blocker_id == current_user.id, UserBlock.blocked_id == user_id)
    block = db.execute(stmt).scalar_one_or_none()
    if block is not None:
        db.delete(block)
        db.commit()
    return OperationResult(success=True)
