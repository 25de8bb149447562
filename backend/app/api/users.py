"""User directory lookups."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.database import get_db
from app.models import User
from app.schemas import PublicUser

router = APIRouter(prefix="/users", tags=["users"])

SEARCH_LIMIT = 20


@router.get("/search", response_model=list[PublicUser])
def search_users(
    q: str = Query(default="", max_length=64),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[User]:
    """Match other users by login or display name."""

    term = q.strip()
    if not term:
        return []
    pattern = f"%{term}%"
    stmt = (
        select(User)
        .where(
            User.id != current_user.id,
            or_(User.login.ilike(pattern), User.display_name.ilike(pattern)),
        )
        .order_by(User.login)
        .limit(SEARCH_LIMIT)
    )
    return list(db.execute(stmt).scalars().all())
