"""Authentication API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, rate_limit_by_ip
from app.core.rate_limit import LOGIN, REGISTER
from app.core.security import access_token_lifetime, create_access_token, get_password_hash, verify_password
from app.database import get_db
from app.models import User
from app.schemas import LoginRequest, ProfileUpdate, Token, UserCreate, UserRead

router = APIRouter()


@router.post(
    "/register",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit_by_ip(REGISTER))],
)
def register_user(user_in: UserCreate, db: Session = Depends(get_db)) -> User:
    """Register a new user in the system."""

    login = user_in.login.lower()
    existing_user = db.execute(select(User).where(User.login == login)).scalar_one_or_none()
    if existing_user is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Login is already taken")

    user = User(
        login=login,
        display_name=user_in.display_name,
        hashed_password=get_password_hash(user_in.password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@router.post("/login", response_model=Token, dependencies=[Depends(rate_limit_by_ip(LOGIN))])
def login_user(credentials: LoginRequest, db: Session = Depends(get_db)) -> Token:
    """Authenticate a user and return a JWT access token."""

    db_user = db.execute(select(User).where(User.login == credentials.login.lower())).scalar_one_or_none()
    if db_user is None or not verify_password(credentials.password, db_user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect login or password")

    lifetime = access_token_lifetime()
    access_token = create_access_token({"sub": str(db_user.id)}, expires_delta=lifetime)
    return Token(access_token=access_token, token_type="bearer", expires_in=int(lifetime.total_seconds()))


@router.get("/me", response_model=UserRead)
def read_current_user(current_user: User = Depends(get_current_user)) -> User:
    return current_user


@router.patch("/me", response_model=UserRead)
def update_current_user(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> User:
    """Update display name and avatar; omitted fields are left untouched."""

    changes = payload.model_dump(exclude_unset=True)
    for field_name in ("display_name", "avatar_url"):
        if field_name in changes:
            setattr(current_user, field_name, changes[field_name])
    db.commit()
    db.refresh(current_user)
    return current_user
