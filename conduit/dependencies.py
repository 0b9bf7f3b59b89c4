from fastapi import Depends, Header, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import begin_snapshot, get_db


class ListingParams:
    """
    Query parameters shared by ``GET /api/articles`` and the feed.

    ``limit`` and ``offset`` are kept as raw strings on purpose: the
    service layer coerces malformed values to defaults instead of the
    framework answering 422.
    """

    def __init__(
        self,
        limit: str | None = Query(None, description="Page size (default 20)."),
        offset: str | None = Query(None, description="Number of articles to skip."),
    ) -> None:
        self.limit = limit
        self.offset = offset


class ArticleFilterParams(ListingParams):
    """Listing parameters plus the three mutually exclusive filters."""

    def __init__(
        self,
        tag: str = Query("", description="Only articles with this tag."),
        author: str = Query("", description="Only articles by this username."),
        favorited: str = Query("", description="Only articles favorited by this username."),
        limit: str | None = Query(None, description="Page size (default 20)."),
        offset: str | None = Query(None, description="Number of articles to skip."),
    ) -> None:
        super().__init__(limit=limit, offset=offset)
        self.tag = tag
        self.author = author
        self.favorited = favorited


def get_viewer_id(x_user_id: str | None = Header(None)) -> int:
    """
    Id of the authenticated user, 0 when anonymous.

    Authentication happens upstream; the gateway forwards the verified
    user id in ``X-User-Id``.  Anything that is not a positive integer is
    treated as anonymous.
    """
    try:
        user_id = int(x_user_id) if x_user_id else 0
    except ValueError:
        return 0
    return max(user_id, 0)


def require_viewer_id(x_user_id: str | None = Header(None)) -> int:
    user_id = get_viewer_id(x_user_id)
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user_id


async def get_snapshot_db(db: AsyncSession = Depends(get_db)) -> AsyncSession:
    """``get_db`` with the transaction pinned to one snapshot before any query runs."""
    await begin_snapshot(db)
    return db
