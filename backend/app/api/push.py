"""Push token registration."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.database import get_db
from app.models import PushToken, User
from app.schemas import PushTokenRead, PushTokenRegister, PushTokenUnregister
from app.services.push import is_expo_push_token

router = APIRouter(prefix="/push", tags=["push"])

logger = logging.getLogger(__name__)


@router.post("/register", response_model=PushTokenRead)
def register_push_token(
    payload: PushTokenRegister,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PushToken:
    """Store a device token; registering the same token again refreshes its device type."""

    if not is_expo_push_token(payload.token):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid push token format")

    stmt = select(PushToken).where(PushToken.user_id == current_user.id, PushToken.token == payload.token)
    record = db.execute(stmt).scalar_one_or_none()
    if record is None:
        record = PushToken(user_id=current_user.id, token=payload.token, device_type=payload.device_type)
        db.add(record)
    else:
        record.device_type = payload.device_type
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        record = db.execute(stmt).scalar_one()
    db.refresh(record)
    logger.info("Push token registered for user %s (%s)", current_user.id, record.device_type)
    return record


@router.delete("/unregister")
def unregister_push_token(
    payload: PushTokenUnregister | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict[str, object]:
    stmt = delete(PushToken).where(PushToken.user_id == current_user.id)
    if payload is not None and payload.token:
        stmt = stmt.where(PushToken.token == payload.token)
    removed = db.execute(stmt).rowcount
    db.commit()
    return {"success": True, "removed": removed}


@router.get("/tokens", response_model=list[PushTokenRead])
def list_push_tokens(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[PushToken]:
    stmt = select(PushToken).where(PushToken.user_id == current_user.id).order_by(PushToken.created_at, PushToken.id)
    return list(db.execute(stmt).scalars().all())
