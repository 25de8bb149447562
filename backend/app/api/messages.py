"""HTTP endpoints for the message lifecycle."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, rate_limit_by_user, unwrap
from app.core.rate_limit import MESSAGE_SEND
from app.config import get_settings
from app.database import get_db
from app.models import User
from app.schemas import (
    MessageCreate,
    MessageRead,
    MessageUpdate,
    OperationResult,
    PinnedMessageRead,
    ReactionRead,
    ReactionRequest,
)
from app.services import messages as message_service
from app.services.notifications import get_notification_dispatcher
from parley.realtime import get_gateway

router = APIRouter(prefix="/messages", tags=["messages"])

settings = get_settings()

logger = logging.getLogger(__name__)


def _reaction_payload(result: message_service.ReactionSet) -> dict:
    return {
        "chat_id": result.chat_id,
        "message_id": result.message_id,
        "reactions": [reaction.model_dump(mode="json") for reaction in result.reactions],
    }


@router.get("/pins/{chat_id}", response_model=list[PinnedMessageRead])
def list_pinned_messages(
    chat_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[PinnedMessageRead]:
    return unwrap(message_service.list_pins(chat_id, current_user.id, db))


@router.get("/{chat_id}", response_model=list[MessageRead])
def list_messages(
    chat_id: int,
    limit: int = Query(default=settings.chat_history_default_limit, ge=1, le=settings.chat_history_max_limit),
    before: int | None = Query(default=None, description="Return messages with an id lower than this"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[MessageRead]:
    """Return a page of chat history ordered oldest to newest."""

    return unwrap(message_service.list_history(chat_id, current_user.id, db, limit=limit, before=before))


@router.post(
    "/{chat_id}",
    response_model=MessageRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit_by_user(MESSAGE_SEND))],
)
async def send_message(
    chat_id: int,
    payload: MessageCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageRead:
    """Persist a message, broadcast it to the chat room and notify absent members."""

    sent = unwrap(
        message_service.send_message(
            chat_id,
            current_user.id,
            db,
            content=payload.content,
            message_type=payload.type,
            metadata=payload.metadata,
            reply_to=payload.reply_to,
        )
    )
    gateway = get_gateway()
    await gateway.emit_to_chat(
        chat_id,
        "new_message",
        {"chat_id": chat_id, "message": sent.message.model_dump(mode="json")},
    )
    get_notification_dispatcher().dispatch(sent.chat, sent.message, gateway.connected_user_ids(chat_id))
    return sent.message


@router.put("/{message_id}", response_model=MessageRead)
async def edit_message(
    message_id: int,
    payload: MessageUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageRead:
    """Edit message content; only the author may edit and deleted messages are final."""

    edited = unwrap(message_service.edit_message(message_id, current_user.id, payload.content, db))
    await get_gateway().emit_to_chat(
        edited.chat_id,
        "message_edited",
        {"chat_id": edited.chat_id, "message": edited.message.model_dump(mode="json")},
    )
    return edited.message


@router.delete("/{message_id}", response_model=OperationResult)
async def delete_message(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> OperationResult:
    """Soft-delete a message."""

    deleted = unwrap(message_service.delete_message(message_id, current_user.id, db))
    if deleted.changed:
        await get_gateway().emit_to_chat(
            deleted.chat_id,
            "message_deleted",
            {
                "chat_id": deleted.chat_id,
                "message_id": deleted.message_id,
                "deleted_at": deleted.deleted_at.isoformat(),
            },
        )
    return OperationResult(success=True)


@router.post("/{message_id}/react")
async def add_reaction(
    message_id: int,
    payload: ReactionRequest | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict[str, list[ReactionRead]]:
    emoji = payload.emoji if payload is not None else None
    result = unwrap(message_service.add_reaction(message_id, current_user.id, emoji, db))
    await get_gateway().emit_to_chat(result.chat_id, "reaction_update", _reaction_payload(result))
    return {"reactions": result.reactions}


@router.delete("/{message_id}/react/{emoji}")
async def remove_reaction(
    message_id: int,
    emoji: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict[str, list[ReactionRead]]:
    result = unwrap(message_service.remove_reaction(message_id, current_user.id, emoji, db))
    await get_gateway().emit_to_chat(result.chat_id, "reaction_update", _reaction_payload(result))
    return {"reactions": result.reactions}


@router.post("/{message_id}/read", response_model=OperationResult)
async def mark_message_read(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> OperationResult:
    receipt = unwrap(message_service.mark_read(message_id, current_user.id, db))
    if receipt.created:
        await get_gateway().emit_to_chat(
            receipt.chat_id,
            "message_read",
            {
                "chat_id": receipt.chat_id,
                "message_id": receipt.message_id,
                "user_id": receipt.user_id,
                "read_at": receipt.read_at.isoformat(),
            },
        )
    return OperationResult(success=True)


@router.post("/{message_id}/pin", response_model=PinnedMessageRead)
async def pin_message(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PinnedMessageRead:
    change = unwrap(message_service.pin_message(message_id, current_user.id, db))
    if change.changed:
        await get_gateway().emit_to_chat(
            change.chat_id,
            "message_pinned",
            {"chat_id": change.chat_id, "message_id": change.message_id, "pin": change.pin.model_dump(mode="json")},
        )
    return change.pin


@router.delete("/{message_id}/pin", response_model=OperationResult)
async def unpin_message(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> OperationResult:
    change = unwrap(message_service.unpin_message(message_id, current_user.id, db))
    if change.changed:
        await get_gateway().emit_to_chat(
            change.chat_id,
            "message_unpinned",
            {"chat_id": change.chat_id, "message_id": change.message_id},
        )
    return OperationResult(success=True)
