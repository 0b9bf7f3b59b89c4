"""
Favorite service — batch favorite aggregation and favorite toggles.

The two batch readers take a whole page of article ids and answer in one
grouped query each, so serializing N articles never issues N lookups.
Both return sparse maps: an id that is absent means zero favorites /
not favorited.
"""
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import get_or_create
from conduit.models import Article, ArticleAuthor, Favorite

logger = logging.getLogger(__name__)


async def favorite_counts(db: AsyncSession, article_ids: list[int]) -> dict[int, int]:
    """Return ``{article_id: favorite_count}`` for ids with at least one favorite."""
    if not article_ids:
        return {}

    q = (
        select(Favorite.article_id, func.count(Favorite.id))
        .where(Favorite.article_id.in_(article_ids))
        .group_by(Favorite.article_id)
    )
    result = await db.execute(q)
    return {article_id: count for article_id, count in result.all()}


async def favorite_status(
    db: AsyncSession, article_ids: list[int], author_id: int
) -> dict[int, bool]:
    """
    Return ``{article_id: True}`` for each id in *article_ids* favorited
    by *author_id*.  ``author_id == 0`` is the anonymous viewer.
    """
    if not article_ids or not author_id:
        return {}

    q = (
        select(Favorite.article_id)
        .where(Favorite.article_id.in_(article_ids), Favorite.author_id == author_id)
        .distinct()
    )
    result = await db.execute(q)
    return {article_id: True for article_id in result.scalars().all()}


async def favorite(db: AsyncSession, article: Article, author: ArticleAuthor) -> Favorite:
    """Favorite *article* as *author*.  Repeating it is a no-op."""
    fav, created = await get_or_create(
        db, Favorite, article_id=article.id, author_id=author.id
    )
    if created:
        logger.debug("Author %s favorited article %s", author.id, article.id)
    return fav


async def unfavorite(db: AsyncSession, article: Article, author: ArticleAuthor) -> None:
    """Remove the favorite if present; succeeds silently otherwise."""
    await db.execute(
        delete(Favorite).where(
            Favorite.article_id == article.id,
            Favorite.author_id == author.id,
        )
    )
