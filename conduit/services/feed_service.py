"""
Feed service — articles written by the users a viewer follows.

Followed users are mapped to ArticleAuthor ids in a single ``IN`` query,
then counted and paged like the unfiltered listing.  A viewer who
follows nobody (or whose followed users never wrote anything) gets an
empty page without the articles table being queried.

The count and the page are read from one snapshot (see
:func:`conduit.database.begin_snapshot`).
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import begin_snapshot
from conduit.models import Article, ArticleAuthor
from conduit.services import author_service, user_service
from conduit.services.article_service import EMPTY_PAGE, ArticlePage, query_articles
from conduit.services.pagination import parse_pagination

logger = logging.getLogger(__name__)


async def get_feed(
    db: AsyncSession, viewer: ArticleAuthor, limit=None, offset=None
) -> ArticlePage:
    await begin_snapshot(db)
    page = parse_pagination(limit, offset)

    followed_user_ids = await user_service.get_followings(db, viewer.user_id)
    if not followed_user_ids:
        return EMPTY_PAGE

    author_ids = await author_service.resolve_author_ids(db, followed_user_ids)
    if not author_ids:
        return EMPTY_PAGE

    logger.debug(
        "Feed for user %s: %d followed author(s), limit=%d offset=%d",
        viewer.user_id, len(author_ids), page.limit, page.offset,
    )
    return await query_articles(db, page, Article.author_id.in_(author_ids))
