"""Channel endpoints addressed by channel id alone, kept for older mobile clients."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.communities import get_channel_or_404, remove_channel, rename_channel
from app.api.deps import get_current_user
from app.database import get_db
from app.models import User
from app.schemas import ChannelCreate, ChannelRead, OperationResult

router = APIRouter(prefix="/channels", tags=["channels"])


@router.put("/{channel_id}", response_model=ChannelRead)
def update_channel(
    channel_id: int,
    payload: ChannelCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ChannelRead:
    return rename_channel(get_channel_or_404(channel_id, db), payload.name, current_user, db)


@router.delete("/{channel_id}", response_model=OperationResult)
def delete_channel(
    channel_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> OperationResult:
    remove_channel(get_channel_or_404(channel_id, db), current_user, db)
    return OperationResult(success=True)
