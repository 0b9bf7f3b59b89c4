"""
ArticleAuthor resolution.

An ArticleAuthor is the article subsystem's own key for a User: articles,
favorites and comments point at it instead of at ``users``.  Rows are
created on first reference and never deleted here.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import get_or_create
from conduit.models import ArticleAuthor

logger = logging.getLogger(__name__)


def anonymous_author() -> ArticleAuthor:
    """Unsaved placeholder standing in for "no authenticated user"."""
    return ArticleAuthor(id=0, user_id=0)


async def get_article_author(db: AsyncSession, user_id: int | None) -> ArticleAuthor:
    """
    Return the ArticleAuthor for *user_id*, creating it if needed.

    ``0`` / ``None`` means anonymous and returns :func:`anonymous_author`
    without touching the database.
    """
    if not user_id:
        return anonymous_author()

    author, created = await get_or_create(db, ArticleAuthor, user_id=user_id)
    if created:
        logger.debug("Created article author %s for user %s", author.id, user_id)
    return author


async def find_article_author(db: AsyncSession, user_id: int | None) -> ArticleAuthor | None:
    """Lookup-only variant: returns None instead of creating a row."""
    if not user_id:
        return None
    result = await db.execute(select(ArticleAuthor).where(ArticleAuthor.user_id == user_id))
    return result.scalar_one_or_none()


async def resolve_author_ids(db: AsyncSession, user_ids: list[int]) -> list[int]:
    """
    Map many user ids to ArticleAuthor ids in one query.

    Users that never authored or favorited anything have no row and are
    simply missing from the result.
    """
    if not user_ids:
        return []
    result = await db.execute(
        select(ArticleAuthor.id).where(ArticleAuthor.user_id.in_(user_ids))
    )
    return list(result.scalars().all())
