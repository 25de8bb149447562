"""Direct and group chats."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.api.deps import get_current_user
from app.database import get_db
from app.models import Chat, ChatKind, ChatMember, Message, User
from app.schemas import (
    ChatDetail,
    ChatMemberAdd,
    ChatMemberRead,
    ChatSummary,
    DirectChatCreate,
    GroupChatCreate,
    NicknameUpdate,
    PublicUser,
)

router = APIRouter(prefix="/chats", tags=["chats"])

ROSTER_KINDS = (ChatKind.DIRECT, ChatKind.GROUP)


def _get_roster_chat(chat_id: int, db: Session) -> Chat:
    chat = db.get(Chat, chat_id)
    if chat is None or chat.kind not in ROSTER_KINDS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")
    return chat


def _get_chat_member(chat_id: int, user_id: int, db: Session) -> ChatMember | None:
    stmt = select(ChatMember).where(ChatMember.chat_id == chat_id, ChatMember.user_id == user_id)
    return db.execute(stmt).scalar_one_or_none()


def _require_chat_member(chat_id: int, user_id: int, db: Session) -> ChatMember:
    membership = _get_chat_member(chat_id, user_id, db)
    if membership is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a member of this chat")
    return membership


def _chat_detail(chat: Chat, db: Session, *, existing: bool = False) -> ChatDetail:
    members = (
        db.execute(
            select(ChatMember)
            .where(ChatMember.chat_id == chat.id)
            .options(selectinload(ChatMember.user))
            .order_by(ChatMember.joined_at, ChatMember.id)
        )
        .scalars()
        .all()
    )
    return ChatDetail(
        id=chat.id,
        kind=chat.kind,
        name=chat.name,
        created_by_id=chat.created_by_id,
        created_at=chat.created_at,
        members=[
            ChatMemberRead(user=PublicUser.model_validate(member.user), nickname=member.nickname, joined_at=member.joined_at)
            for member in members
        ],
        existing=existing,
    )


def _add_member(chat_id: int, user_id: int, db: Session) -> bool:
    if _get_chat_member(chat_id, user_id, db) is not None:
        return False
    db.add(ChatMember(chat_id=chat_id, user_id=user_id))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    return True


@router.get("", response_model=list[ChatSummary])
def list_chats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[ChatSummary]:
    """Direct and group chats of the current user, most recent activity first."""

    member_counts = (
        select(ChatMember.chat_id, func.count(ChatMember.id).label("member_count"))
        .group_by(ChatMember.chat_id)
        .subquery()
    )
    latest = (
        select(Message)
        .where(Message.chat_id == Chat.id, Message.deleted_at.is_(None))
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(1)
        .correlate(Chat)
    )
    last_content = latest.with_only_columns(Message.content).scalar_subquery()
    last_at = latest.with_only_columns(Message.created_at).scalar_subquery()

    stmt = (
        select(
            Chat,
            ChatMember.nickname,
            member_counts.c.member_count,
            last_content.label("last_message"),
            last_at.label("last_message_at"),
        )
        .join(ChatMember, ChatMember.chat_id == Chat.id)
        .join(member_counts, member_counts.c.chat_id == Chat.id)
        .where(ChatMember.user_id == current_user.id, Chat.kind.in_(ROSTER_KINDS))
    )
    summaries = [
        ChatSummary(
            id=chat.id,
            kind=chat.kind,
            name=chat.name,
            nickname=nickname,
            member_count=count,
            last_message=last_message,
            last_message_at=last_message_at,
            created_at=chat.created_at,
        )
        for chat, nickname, count, last_message, last_message_at in db.execute(stmt).all()
    ]
    # Chats with messages first, then by activity time
    summaries.sort(
        key=lambda item: (item.last_message_at is not None, item.last_message_at or item.created_at, item.id),
        reverse=True,
    )
    return summaries


@router.post("/group", response_model=ChatDetail, status_code=status.HTTP_201_CREATED)
def create_group_chat(
    payload: GroupChatCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ChatDetail:
    """Create a named group with the creator and every known user in ``member_ids``."""

    chat = Chat(kind=ChatKind.GROUP, name=payload.name, created_by_id=current_user.id)
    db.add(chat)
    db.flush()

    member_ids = {current_user.id}
    requested = {user_id for user_id in payload.member_ids if user_id != current_user.id}
    if requested:
        known = db.execute(select(User.id).where(User.id.in_(requested))).scalars().all()
        member_ids.update(known)
    for user_id in sorted(member_ids):
        db.add(ChatMember(chat_id=chat.id, user_id=user_id))
    db.commit()
    return _chat_detail(chat, db)


@router.post("/dm", response_model=ChatDetail, status_code=status.HTTP_201_CREATED)
def open_direct_chat(
    payload: DirectChatCreate,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ChatDetail:
    """Return the existing direct chat with a user or start a new one."""

    if payload.user_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot DM yourself")
    other = db.get(User, payload.user_id)
    if other is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    mine = select(ChatMember.chat_id).where(ChatMember.user_id == current_user.id)
    theirs = select(ChatMember.chat_id).where(ChatMember.user_id == other.id)
    existing = db.execute(
        select(Chat)
        .where(Chat.kind == ChatKind.DIRECT, Chat.id.in_(mine), Chat.id.in_(theirs))
        .order_by(Chat.id)
        .limit(1)
    ).scalar_one_or_none()
    if existing is not None:
        response.status_code = status.HTTP_200_OK
        return _chat_detail(existing, db, existing=True)

    chat = Chat(kind=ChatKind.DIRECT, created_by_id=current_user.id)
    db.add(chat)
    db.flush()
    db.add_all([ChatMember(chat_id=chat.id, user_id=current_user.id), ChatMember(chat_id=chat.id, user_id=other.id)])
    db.commit()
    return _chat_detail(chat, db)


@router.get("/{chat_id}", response_model=ChatDetail)
def read_chat(
    chat_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ChatDetail:
    chat = _get_roster_chat(chat_id, db)
    _require_chat_member(chat.id, current_user.id, db)
    return _chat_detail(chat, db)


@router.post("/{chat_id}/members", response_model=ChatDetail)
def add_chat_member(
    chat_id: int,
    payload: ChatMemberAdd,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ChatDetail:
    """Any group member may add another user; adding an existing member changes nothing."""

    chat = db.get(Chat, chat_id)
    if chat is None or chat.kind != ChatKind.GROUP:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group chat not found")
    _require_chat_member(chat.id, current_user.id, db)
    if db.get(User, payload.user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    _add_member(chat.id, payload.user_id, db)
    return _chat_detail(chat, db)


@router.put("/{chat_id}/nickname")
def update_nickname(
    chat_id: int,
    payload: NicknameUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict[str, object]:
    chat = _get_roster_chat(chat_id, db)
    membership = _require_chat_member(chat.id, current_user.id, db)
    membership.nickname = payload.nickname or None
    db.commit()
    return {"success": True, "nickname": membership.nickname}
