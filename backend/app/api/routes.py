from fastapi import APIRouter

from app.api.auth import router as auth_router
from app.api.channels import router as channels_router
from app.api.chats import router as chats_router
from app.api.communities import router as communities_router
from app.api.friends import router as friends_router
from app.api.invites import router as invites_router
from app.api.messages import router as messages_router
from app.api.push import router as push_router
from app.api.users import router as users_router

router = APIRouter()

router.include_router(auth_router, prefix="/auth", tags=["auth"])
router.include_router(communities_router)
router.include_router(channels_router)
router.include_router(invites_router)
router.include_router(chats_router)
router.include_router(users_router)
router.include_router(friends_router)
router.include_router(messages_router)
router.include_router(push_router)


@router.get("/", tags=["root"])
def read_root() -> dict[str, str]:
    return {"message": "Welcome to the Parley API"}
