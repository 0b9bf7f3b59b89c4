from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import get_db
from conduit.dependencies import get_viewer_id, require_viewer_id
from conduit.models import User
from conduit.schemas import SingleProfileResponse, SingleUserResponse, UserCreateRequest
from conduit.services import user_service

router = APIRouter(prefix="/api", tags=["users"])


async def _user_or_404(db: AsyncSession, username: str) -> User:
    user = await user_service.get_user_by_username(db, username)
    if user is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return user


@router.post("/users", status_code=201, response_model=SingleUserResponse)
async def create_user(data: UserCreateRequest, db: AsyncSession = Depends(get_db)):
    try:
        return {"user": await user_service.create_user(db, data.user)}
    except IntegrityError:
        raise HTTPException(
            status_code=409,
            detail="A user with this username or email already exists",
        )


@router.get("/profiles/{username}", response_model=SingleProfileResponse)
async def get_profile(
    username: str,
    viewer_id: int = Depends(get_viewer_id),
    db: AsyncSession = Depends(get_db),
):
    user = await _user_or_404(db, username)
    following = await user_service.is_following(db, viewer_id, user.id)
    return {"profile": user_service.profile_to_dict(user, following)}


@router.post("/profiles/{username}/follow", response_model=SingleProfileResponse)
async def follow_user(
    username: str,
    viewer_id: int = Depends(require_viewer_id),
    db: AsyncSession = Depends(get_db),
):
    if await user_service.get_user(db, viewer_id) is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    user = await _user_or_404(db, username)
    if user.id == viewer_id:
        raise HTTPException(status_code=422, detail="Cannot follow yourself")
    await user_service.follow(db, viewer_id, user)
    return {"profile": user_service.profile_to_dict(user, True)}


@router.delete("/profiles/{username}/follow", response_model=SingleProfileResponse)
async def unfollow_user(
    username: str,
    viewer_id: int = Depends(require_viewer_id),
    db: AsyncSession = Depends(get_db),
):
    user = await _user_or_404(db, username)
    await user_service.unfollow(db, viewer_id, user)
    return {"profile": user_service.profile_to_dict(user, False)}
