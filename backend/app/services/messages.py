"""Message lifecycle: send, edit, soft delete, reactions, read receipts and pins.

Every operation authorizes through the membership authority on the chat that
owns the message, commits its write, and only then returns the data the
caller broadcasts. Expected failures come back as outcome values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.config import get_settings
from app.models import Message, MessageReaction, MessageReceipt, MessageType, PinnedMessage, User
from app.monitoring.metrics import message_operations_total
from app.schemas.messages import (
    MessageRead,
    MessageSender,
    PinnedMessageRead,
    ReactionRead,
    ReplyPreview,
)
from app.services.membership import ChatRef, verify_membership
from app.services.outcomes import Failure, Forbidden, InvalidInput, NotFound, Outcome, Success, is_failure
from app.services.sanitize import sanitize_message_content

logger = logging.getLogger(__name__)

settings = get_settings()

DELETED_USER_NAME = "Deleted user"
MESSAGE_TYPES = frozenset(member.value for member in MessageType)


@dataclass(frozen=True, slots=True)
class SentMessage:
    chat: ChatRef
    message: MessageRead


@dataclass(frozen=True, slots=True)
class EditedMessage:
    chat_id: int
    message: MessageRead


@dataclass(frozen=True, slots=True)
class DeletedMessage:
    chat_id: int
    message_id: int
    deleted_at: datetime
    changed: bool


@dataclass(frozen=True, slots=True)
class ReactionSet:
    chat_id: int
    message_id: int
    reactions: list[ReactionRead]
    changed: bool


@dataclass(frozen=True, slots=True)
class ReadReceipt:
    chat_id: int
    message_id: int
    user_id: int
    read_at: datetime
    created: bool


@dataclass(frozen=True, slots=True)
class PinChange:
    chat_id: int
    message_id: int
    pin: PinnedMessageRead | None
    changed: bool


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _count(action: str) -> None:
    message_operations_total.labels(action).inc()


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def serialize_sender(user: User | None) -> MessageSender:
    if user is None:
        return MessageSender(id=None, login=None, display_name=DELETED_USER_NAME, avatar_url=None)
    return MessageSender(
        id=user.id,
        login=user.login,
        display_name=user.public_name,
        avatar_url=user.avatar_url,
    )


def _reply_preview(message: Message) -> ReplyPreview | None:
    target = message.reply_to
    if target is None:
        return None
    # Deleted targets still preview their original text.
    return ReplyPreview(
        id=target.id,
        content=(target.content or "")[: settings.chat_reply_preview_length],
        sender=serialize_sender(target.author),
    )


def _serialize_reaction(reaction: MessageReaction) -> ReactionRead:
    return ReactionRead(
        emoji=reaction.emoji,
        user_id=reaction.user_id,
        login=reaction.user.login,
        display_name=reaction.user.public_name,
    )


def serialize_message(message: Message) -> MessageRead:
    """Build the client-facing message shape.

    Soft-deleted messages are rendered as tombstones: identity, sender and
    timestamps survive, content and metadata do not.
    """

    deleted = message.is_deleted
    return MessageRead(
        id=message.id,
        chat_id=message.chat_id,
        content="" if deleted else message.content,
        type=message.message_type,
        metadata=None if deleted else message.meta,
        reply_to=message.reply_to_id,
        reply_to_message=_reply_preview(message),
        reactions=[_serialize_reaction(reaction) for reaction in message.reactions],
        created_at=message.created_at,
        edited_at=message.edited_at,
        deleted_at=message.deleted_at,
        sender=serialize_sender(message.author),
    )


def serialize_pin(pin: PinnedMessage) -> PinnedMessageRead:
    return PinnedMessageRead(
        chat_id=pin.chat_id,
        message_id=pin.message_id,
        pinned_at=pin.pinned_at,
        pinned_by=serialize_sender(pin.pinned_by),
        message=serialize_message(pin.message),
    )


def _message_options():
    return (
        selectinload(Message.author),
        selectinload(Message.reply_to).selectinload(Message.author),
        selectinload(Message.reactions).selectinload(MessageReaction.user),
    )


def _load_message(message_id: int, db: Session) -> Message | None:
    stmt = select(Message).where(Message.id == message_id).options(*_message_options())
    return db.execute(stmt).scalar_one_or_none()


def _load_pin(message_id: int, db: Session) -> PinnedMessage | None:
    stmt = (
        select(PinnedMessage)
        .where(PinnedMessage.message_id == message_id)
        .options(
            selectinload(PinnedMessage.pinned_by),
            selectinload(PinnedMessage.message).options(*_message_options()),
        )
    )
    return db.execute(stmt).scalar_one_or_none()


def current_reactions(message_id: int, db: Session) -> list[ReactionRead]:
    stmt = (
        select(MessageReaction)
        .where(MessageReaction.message_id == message_id)
        .options(selectinload(MessageReaction.user))
        .order_by(MessageReaction.id)
    )
    return [_serialize_reaction(reaction) for reaction in db.execute(stmt).scalars().all()]


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


def authorize_chat(chat_id: int, user_id: int, db: Session) -> ChatRef | Failure:
    check = verify_membership(chat_id, user_id, db)
    if check.chat is None:
        return NotFound("Chat not found")
    if not check.is_member:
        return Forbidden("Not a member of this chat")
    return check.chat


def _authorize_message(message_id: int, user_id: int, db: Session) -> Message | Failure:
    """Look the message up first, then check membership of the chat owning it."""

    message = _load_message(message_id, db)
    if message is None:
        return NotFound("Message not found")
    chat = authorize_chat(message.chat_id, user_id, db)
    if is_failure(chat):
        return chat
    return message


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def list_history(
    chat_id: int,
    user_id: int,
    db: Session,
    *,
    limit: int | None = None,
    before: int | None = None,
) -> Outcome[list[MessageRead]]:
    """Return up to ``limit`` messages older than ``before``, oldest first."""

    chat = authorize_chat(chat_id, user_id, db)
    if is_failure(chat):
        return chat

    size = limit if limit is not None else settings.chat_history_default_limit
    size = max(1, min(size, settings.chat_history_max_limit))

    stmt = select(Message).where(Message.chat_id == chat_id).options(*_message_options())
    if before is not None:
        stmt = stmt.where(Message.id < before)
    stmt = stmt.order_by(Message.created_at.desc(), Message.id.desc()).limit(size)

    messages = list(db.execute(stmt).scalars().all())
    messages.reverse()
    return Success([serialize_message(message) for message in messages])


def send_message(
    chat_id: int,
    author_id: int,
    db: Session,
    *,
    content: str | None,
    message_type: str = MessageType.TEXT.value,
    metadata: dict[str, Any] | None = None,
    reply_to: int | None = None,
) -> Outcome[SentMessage]:
    chat = authorize_chat(chat_id, author_id, db)
    if is_failure(chat):
        return chat

    if message_type not in MESSAGE_TYPES:
        return InvalidInput("Invalid message type")
    kind = MessageType(message_type)

    text = sanitize_message_content(content)
    if kind == MessageType.TEXT and not text:
        return InvalidInput("Message content is required")
    if len(text) > settings.chat_message_max_length:
        return InvalidInput(f"Message cannot exceed {settings.chat_message_max_length} characters")

    if reply_to is not None:
        target = db.get(Message, reply_to)
        if target is None or target.chat_id != chat_id:
            return InvalidInput("Reply target not found in this chat")

    message = Message(
        chat_id=chat_id,
        author_id=author_id,
        content=text,
        message_type=kind,
        meta=metadata,
        reply_to_id=reply_to,
    )
    db.add(message)
    db.commit()
    _count("send")

    stored = _load_message(message.id, db)
    return Success(SentMessage(chat=chat, message=serialize_message(stored)))


def edit_message(message_id: int, user_id: int, content: str | None, db: Session) -> Outcome[EditedMessage]:
    message = _authorize_message(message_id, user_id, db)
    if is_failure(message):
        return message
    if message.author_id != user_id:
        return Forbidden("Can only edit your own messages")
    if message.is_deleted:
        return InvalidInput("Cannot edit a deleted message")
    if message.message_type != MessageType.TEXT:
        return InvalidInput("Only text messages can be edited")

    text = sanitize_message_content(content)
    if not text:
        return InvalidInput("Message content is required")
    if len(text) > settings.chat_message_max_length:
        return InvalidInput(f"Message cannot exceed {settings.chat_message_max_length} characters")

    message.content = text
    message.edited_at = _utcnow()
    db.commit()
    _count("edit")

    stored = _load_message(message_id, db)
    return Success(EditedMessage(chat_id=stored.chat_id, message=serialize_message(stored)))


def delete_message(message_id: int, user_id: int, db: Session) -> Outcome[DeletedMessage]:
    """Soft delete; deleting an already deleted message succeeds without changes."""

    message = _authorize_message(message_id, user_id, db)
    if is_failure(message):
        return message
    if message.author_id != user_id:
        return Forbidden("Can only delete your own messages")

    if message.deleted_at is not None:
        return Success(
            DeletedMessage(
                chat_id=message.chat_id,
                message_id=message.id,
                deleted_at=message.deleted_at,
                changed=False,
            )
        )

    deleted_at = _utcnow()
    chat_id = message.chat_id
    message.deleted_at = deleted_at
    db.commit()
    _count("delete")
    return Success(DeletedMessage(chat_id=chat_id, message_id=message_id, deleted_at=deleted_at, changed=True))


def add_reaction(message_id: int, user_id: int, emoji: str | None, db: Session) -> Outcome[ReactionSet]:
    emoji = (emoji or "").strip()
    if not emoji:
        return InvalidInput("Emoji is required")

    message = _authorize_message(message_id, user_id, db)
    if is_failure(message):
        return message
    chat_id = message.chat_id

    exists = db.execute(
        select(MessageReaction.id).where(
            MessageReaction.message_id == message_id,
            MessageReaction.user_id == user_id,
            MessageReaction.emoji == emoji,
        )
    ).first()
    changed = False
    if exists is None:
        db.add(MessageReaction(message_id=message_id, user_id=user_id, emoji=emoji))
        try:
            db.commit()
            changed = True
        except IntegrityError:
            # A concurrent request inserted the same reaction.
            db.rollback()
    if changed:
        _count("react")

    return Success(
        ReactionSet(
            chat_id=chat_id,
            message_id=message_id,
            reactions=current_reactions(message_id, db),
            changed=changed,
        )
    )


def remove_reaction(message_id: int, user_id: int, emoji: str, db: Session) -> Outcome[ReactionSet]:
    message = _authorize_message(message_id, user_id, db)
    if is_failure(message):
        return message
    chat_id = message.chat_id

    result = db.execute(
        delete(MessageReaction).where(
            MessageReaction.message_id == message_id,
            MessageReaction.user_id == user_id,
            MessageReaction.emoji == emoji,
        )
    )
    db.commit()
    changed = result.rowcount > 0
    if changed:
        _count("unreact")

    return Success(
        ReactionSet(
            chat_id=chat_id,
            message_id=message_id,
            reactions=current_reactions(message_id, db),
            changed=changed,
        )
    )


def mark_read(message_id: int, user_id: int, db: Session) -> Outcome[ReadReceipt]:
    """Record the first time ``user_id`` read the message; later calls keep that time."""

    message = _authorize_message(message_id, user_id, db)
    if is_failure(message):
        return message
    chat_id = message.chat_id

    def existing() -> MessageReceipt | None:
        return db.execute(
            select(MessageReceipt).where(
                MessageReceipt.message_id == message_id,
                MessageReceipt.user_id == user_id,
            )
        ).scalar_one_or_none()

    receipt = existing()
    if receipt is not None:
        return Success(
            ReadReceipt(chat_id=chat_id, message_id=message_id, user_id=user_id, read_at=receipt.read_at, created=False)
        )

    read_at = _utcnow()
    db.add(MessageReceipt(message_id=message_id, user_id=user_id, read_at=read_at))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        receipt = existing()
        return Success(
            ReadReceipt(chat_id=chat_id, message_id=message_id, user_id=user_id, read_at=receipt.read_at, created=False)
        )
    _count("read")
    return Success(ReadReceipt(chat_id=chat_id, message_id=message_id, user_id=user_id, read_at=read_at, created=True))


def pin_message(message_id: int, user_id: int, db: Session) -> Outcome[PinChange]:
    """Pin a message for its chat; pinning an already pinned message is a no-op."""

    message = _authorize_message(message_id, user_id, db)
    if is_failure(message):
        return message
    if message.is_deleted:
        return InvalidInput("Cannot pin a deleted message")
    chat_id = message.chat_id

    pin = _load_pin(message_id, db)
    if pin is not None:
        return Success(PinChange(chat_id=chat_id, message_id=message_id, pin=serialize_pin(pin), changed=False))

    db.add(PinnedMessage(chat_id=chat_id, message_id=message_id, pinned_by_id=user_id, pinned_at=_utcnow()))
    changed = False
    try:
        db.commit()
        changed = True
    except IntegrityError:
        db.rollback()
    if changed:
        _count("pin")

    pin = _load_pin(message_id, db)
    return Success(PinChange(chat_id=chat_id, message_id=message_id, pin=serialize_pin(pin), changed=changed))


def unpin_message(message_id: int, user_id: int, db: Session) -> Outcome[PinChange]:
    message = _authorize_message(message_id, user_id, db)
    if is_failure(message):
        return message
    chat_id = message.chat_id

    result = db.execute(delete(PinnedMessage).where(PinnedMessage.message_id == message_id))
    db.commit()
    changed = result.rowcount > 0
    if changed:
        _count("unpin")
    return Success(PinChange(chat_id=chat_id, message_id=message_id, pin=None, changed=changed))


def list_pins(chat_id: int, user_id: int, db: Session) -> Outcome[list[PinnedMessageRead]]:
    """Pins of a chat, most recently pinned first."""

    chat = authorize_chat(chat_id, user_id, db)
    if is_failure(chat):
        return chat

    stmt = (
        select(PinnedMessage)
        .where(PinnedMessage.chat_id == chat_id)
        .options(
            selectinload(PinnedMessage.pinned_by),
            selectinload(PinnedMessage.message).options(*_message_options()),
        )
        .order_by(PinnedMessage.pinned_at.desc(), PinnedMessage.id.desc())
    )
    return Success([serialize_pin(pin) for pin in db.execute(stmt).scalars().all()])
