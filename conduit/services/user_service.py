"""
User service — the slice of the profile/follow subsystem the article
engine depends on.

The article core consumes exactly one query from here,
``get_followings``; the rest exists so the HTTP layer and the tests can
create users and follow relations.
"""
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import get_or_create
from conduit.models import Follow, User
from conduit.schemas import UserCreate


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "bio": user.bio,
        "image": user.image,
    }


def profile_to_dict(user: User, following: bool) -> dict:
    """Serialise *user* as a public profile as seen by some viewer."""
    return {
        "username": user.username,
        "bio": user.bio,
        "image": user.image,
        "following": following,
    }


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def get_user_by_username(db: AsyncSession, username: str) -> User | None:
    result = await db.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def get_user(db: AsyncSession, user_id: int) -> User | None:
    if not user_id:
        return None
    return await db.get(User, user_id)


async def get_followings(db: AsyncSession, user_id: int) -> list[int]:
    """
    Return the ids of the users *user_id* follows.

    Never raises for "follows nobody" or for the anonymous id 0; both
    give an empty list.
    """
    if not user_id:
        return []
    result = await db.execute(
        select(Follow.following_id).where(Follow.followed_by_id == user_id)
    )
    return list(result.scalars().all())


async def is_following(db: AsyncSession, user_id: int, other_id: int) -> bool:
    if not user_id:
        return False
    result = await db.execute(
        select(Follow.id).where(
            Follow.followed_by_id == user_id, Follow.following_id == other_id
        )
    )
    return result.first() is not None


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def create_user(db: AsyncSession, data: UserCreate) -> dict:
    """
    Create a new user and return its serialised dict.

    Username and email uniqueness is enforced by the schema; the router
    translates the resulting ``IntegrityError`` into a 409.
    """
    user = User(
        username=data.username,
        email=data.email,
        bio=data.bio,
        image=data.image,
    )
    db.add(user)
    await db.flush()
    return _user_to_dict(user)


async def follow(db: AsyncSession, follower_id: int, user: User) -> None:
    await get_or_create(db, Follow, following_id=user.id, followed_by_id=follower_id)


async def unfollow(db: AsyncSession, follower_id: int, user: User) -> None:
    await db.execute(
        delete(Follow).where(
            Follow.following_id == user.id, Follow.followed_by_id == follower_id
        )
    )
