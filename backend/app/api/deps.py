"""FastAPI dependencies for the API layer."""

from typing import Callable, TypeVar

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.rate_limit import RateRule, get_rate_limiter
from app.core.security import decode_access_token
from app.database import get_db
from app.models import Community, CommunityMember, User
from app.services.outcomes import Forbidden, InvalidInput, NotFound, Outcome, Success

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

T = TypeVar("T")

_CREDENTIALS_ERROR = "Could not validate credentials"


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Retrieve the current user from the JWT token."""

    return get_user_from_token(token, db)


def get_user_from_token(token: str, db: Session) -> User:
    """Resolve a user from a JWT token or raise an HTTP 401 error."""

    payload = decode_access_token(token)
    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=_CREDENTIALS_ERROR) from None

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=_CREDENTIALS_ERROR)
    return user


def rate_limit_by_ip(rule: RateRule) -> Callable[[Request], None]:
    """Dependency counting requests per client address against ``rule``."""

    def _check(request: Request) -> None:
        host = request.client.host if request.client else "unknown"
        get_rate_limiter().hit(rule, host)

    return _check


def rate_limit_by_user(rule: RateRule) -> Callable[[User], None]:
    """Dependency counting requests per authenticated user against ``rule``."""

    def _check(current_user: User = Depends(get_current_user)) -> None:
        get_rate_limiter().hit(rule, str(current_user.id))

    return _check


def unwrap(outcome: Outcome[T]) -> T:
    """Return the value of a successful outcome or raise the matching HTTP error."""

    if isinstance(outcome, Success):
        return outcome.value
    if isinstance(outcome, NotFound):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=outcome.detail)
    if isinstance(outcome, Forbidden):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=outcome.detail)
    if isinstance(outcome, InvalidInput):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=outcome.detail)
    raise TypeError(f"Unexpected outcome {outcome!r}")


def get_community_or_404(community_id: int, db: Session) -> Community:
    community = db.get(Community, community_id)
    if community is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Community not found")
    return community


def get_community_member(community_id: int, user_id: int, db: Session) -> CommunityMember | None:
    stmt = select(CommunityMember).where(
        CommunityMember.community_id == community_id,
        CommunityMember.user_id == user_id,
    )
    return db.execute(stmt).scalar_one_or_none()


def require_community_member(community_id: int, user_id: int, db: Session) -> CommunityMember:
    """Ensure the user belongs to the community, raising HTTP 403 otherwise."""

    membership = get_community_member(community_id, user_id, db)
    if membership is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a member of this community")
    return membership


def require_community_owner(community: Community, user_id: int) -> None:
    if community.owner_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the owner can do this")
