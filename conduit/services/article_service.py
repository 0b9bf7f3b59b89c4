"""
Article service — listing engine, single-article CRUD and serialisation.

Design notes
------------
- A listing call honours at most one filter.  ``ArticleFilter.select``
  picks it with a fixed precedence (tag, then author, then favorited-by)
  and the rest are ignored; combining filters is not supported.
- Filtered listings run in two steps: first the page of matching ids
  (resolved through the filter subject's association), then one batched
  fetch of those ids with ``joinedload`` for the author chain and
  ``selectinload`` for tags.  Splitting "which ids" from "which rows"
  keeps the eager loads off the join used for filtering.
- The unfiltered listing has no subject to resolve, so the count and the
  paginated eager-loaded query run directly.
- An unknown tag / author / favoriting user yields an empty page with a
  zero total, not an error.
- All statements of one call share the caller's session transaction,
  pinned to one snapshot by ``begin_snapshot`` (REPEATABLE READ on
  PostgreSQL) so the total and the page agree under concurrent writes.
  Errors propagate and the ``get_db`` dependency rolls back.
- Favorite counts and statuses are not part of the listing; they are
  computed in batch by ``serialize_articles`` over the returned page.
- Service functions flush but do not commit; the transaction boundary
  is owned by the ``get_db`` dependency in the router layer.
"""
import enum
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import NamedTuple

from sqlalchemy import Select, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from conduit.database import begin_snapshot
from conduit.models import Article, ArticleAuthor, Favorite, Tag, article_tags, utcnow
from conduit.schemas import ArticleCreate, ArticleUpdate
from conduit.services import author_service, favorite_service, tag_service, user_service
from conduit.services.pagination import Page, parse_pagination

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")

# Most recently updated first; id breaks timestamp ties.
_ORDERING = (Article.updated_at.desc(), Article.id.desc())

# Slug claims lost to concurrent writers before create_article gives up.
_INSERT_ATTEMPTS = 3


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase slug derived from *text*."""
    text = _SLUG_STRIP_RE.sub("", text.lower().strip())
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


def _live():
    return Article.deleted_at.is_(None)


def _with_relations(q: Select) -> Select:
    """Attach the author chain and tags; refresh rows already in the session."""
    return q.options(
        joinedload(Article.author).joinedload(ArticleAuthor.user),
        selectinload(Article.tags),
    ).execution_options(populate_existing=True)


class ArticlePage(NamedTuple):
    articles: list[Article]
    total: int


EMPTY_PAGE = ArticlePage([], 0)


# ---------------------------------------------------------------------------
# Filter selection
# ---------------------------------------------------------------------------

class FilterKind(str, enum.Enum):
    """Listing filters, in precedence order."""

    TAG = "tag"
    AUTHOR = "author"
    FAVORITED = "favorited"
    NONE = "none"


@dataclass(frozen=True)
class ArticleFilter:
    kind: FilterKind
    value: str = ""

    @classmethod
    def select(cls, tag: str = "", author: str = "", favorited: str = "") -> "ArticleFilter":
        """Pick the single filter a listing honours: tag > author > favorited."""
        if tag:
            return cls(FilterKind.TAG, tag)
        if author:
            return cls(FilterKind.AUTHOR, author)
        if favorited:
            return cls(FilterKind.FAVORITED, favorited)
        return cls(FilterKind.NONE)


async def _author_for_username(db: AsyncSession, username: str) -> ArticleAuthor | None:
    user = await user_service.get_user_by_username(db, username)
    if user is None:
        return None
    return await author_service.find_article_author(db, user.id)


async def _matching_ids(db: AsyncSession, flt: ArticleFilter) -> Select | None:
    """
    Resolve the filter subject and return a SELECT of matching live
    article ids, or None when the subject does not exist.
    """
    if flt.kind is FilterKind.TAG:
        tag = (await db.execute(select(Tag).where(Tag.name == flt.value))).scalar_one_or_none()
        if tag is None:
            return None
        return (
            select(Article.id)
            .join(article_tags, article_tags.c.article_id == Article.id)
            .where(article_tags.c.tag_id == tag.id, _live())
        )

    if flt.kind is FilterKind.AUTHOR:
        author = await _author_for_username(db, flt.value)
        if author is None:
            return None
        return select(Article.id).where(Article.author_id == author.id, _live())

    if flt.kind is FilterKind.FAVORITED:
        author = await _author_for_username(db, flt.value)
        if author is None:
            return None
        return (
            select(Article.id)
            .join(Favorite, Favorite.article_id == Article.id)
            .where(Favorite.author_id == author.id, _live())
        )

    raise ValueError(f"filter {flt.kind} has no subject")


# ---------------------------------------------------------------------------
# Page fetchers
# ---------------------------------------------------------------------------

async def fetch_by_ids(db: AsyncSession, article_ids: list[int]) -> list[Article]:
    """Load *article_ids* in one query with author and tags attached."""
    if not article_ids:
        return []
    q = _with_relations(select(Article).where(Article.id.in_(article_ids)).order_by(*_ORDERING))
    result = await db.execute(q)
    return list(result.unique().scalars().all())


async def _page_from_ids(db: AsyncSession, ids_q: Select, page: Page) -> ArticlePage:
    total: int = (
        await db.execute(select(func.count()).select_from(ids_q.subquery()))
    ).scalar_one()
    if total == 0:
        return EMPTY_PAGE

    page_q = ids_q.order_by(*_ORDERING).offset(page.offset).limit(page.limit)
    article_ids = list((await db.execute(page_q)).scalars().all())
    return ArticlePage(await fetch_by_ids(db, article_ids), total)


async def query_articles(db: AsyncSession, page: Page, *criteria) -> ArticlePage:
    """
    Count live articles matching *criteria* and load one page of them
    directly, without an id round-trip.
    """
    count_q = select(func.count()).select_from(Article).where(_live(), *criteria)
    total: int = (await db.execute(count_q)).scalar_one()
    if total == 0:
        return EMPTY_PAGE

    q = _with_relations(
        select(Article)
        .where(_live(), *criteria)
        .order_by(*_ORDERING)
        .offset(page.offset)
        .limit(page.limit)
    )
    result = await db.execute(q)
    return ArticlePage(list(result.unique().scalars().all()), total)


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def list_articles(
    db: AsyncSession,
    tag: str = "",
    author: str = "",
    limit=None,
    offset=None,
    favorited: str = "",
) -> ArticlePage:
    """
    Return one page of articles plus the total number of matches.

    *limit* and *offset* may be raw strings; see
    :func:`~conduit.services.pagination.parse_pagination`.
    """
    await begin_snapshot(db)
    page = parse_pagination(limit, offset)
    flt = ArticleFilter.select(tag=tag, author=author, favorited=favorited)
    logger.debug(
        "Listing articles filter=%s value=%r limit=%d offset=%d",
        flt.kind.value, flt.value, page.limit, page.offset,
    )

    if flt.kind is FilterKind.NONE:
        return await query_articles(db, page)

    ids_q = await _matching_ids(db, flt)
    if ids_q is None:
        return EMPTY_PAGE
    return await _page_from_ids(db, ids_q, page)


async def get_article(db: AsyncSession, slug: str) -> Article | None:
    """Return the live article with *slug*, or None."""
    q = _with_relations(select(Article).where(Article.slug == slug, _live()))
    result = await db.execute(q)
    return result.unique().scalar_one_or_none()


async def _reload(db: AsyncSession, article_id: int) -> Article:
    q = _with_relations(select(Article).where(Article.id == article_id))
    return (await db.execute(q)).unique().scalar_one()


async def _slug_taken(db: AsyncSession, slug: str, exclude_id: int | None) -> bool:
    q = select(Article.id).where(Article.slug == slug, _live())
    if exclude_id is not None:
        q = q.where(Article.id != exclude_id)
    return (await db.execute(q)).first() is not None


async def _unique_slug(db: AsyncSession, title: str, exclude_id: int | None = None) -> str:
    """
    Slug for *title* that does not collide with another live article.

    A taken slug gets a Unix timestamp suffix; if that is taken too (same
    title twice in one second) a counter is appended until one is free.
    """
    slug = slugify(title) or "article"
    if not await _slug_taken(db, slug, exclude_id):
        return slug

    stamped = f"{slug}-{int(time.time())}"
    candidate = stamped
    n = 1
    while await _slug_taken(db, candidate, exclude_id):
        n += 1
        candidate = f"{stamped}-{n}"
    return candidate


async def create_article(db: AsyncSession, author: ArticleAuthor, data: ArticleCreate) -> Article:
    """
    Insert a new article for *author*.

    The insert runs in a SAVEPOINT.  A concurrent writer can claim the
    chosen slug between the check and the insert; the unique index then
    rejects ours and a fresh slug is picked, up to ``_INSERT_ATTEMPTS``
    times before the ``IntegrityError`` propagates.
    """
    tags = await tag_service.normalize_tags(db, data.tag_list)

    for attempt in range(1, _INSERT_ATTEMPTS + 1):
        article = Article(
            slug=await _unique_slug(db, data.title),
            title=data.title,
            description=data.description,
            body=data.body,
            author_id=author.id,
        )
        try:
            async with db.begin_nested():
                db.add(article)
        except IntegrityError:
            if attempt == _INSERT_ATTEMPTS:
                raise
            logger.debug("Slug %r was claimed concurrently; retrying", article.slug)
            continue
        break

    article.tags = set(tags)
    await db.flush()
    logger.info("Created article %s (%s) by author %s", article.id, article.slug, author.id)
    return await _reload(db, article.id)


async def update_article(db: AsyncSession, article: Article, data: ArticleUpdate) -> Article:
    """
    Apply the fields set in *data* to *article*.

    A new title regenerates the slug.  ``tag_list`` replaces the tag set
    when present.
    """
    update_data = data.model_dump(exclude_unset=True)
    tag_list: list[str] | None = update_data.pop("tag_list", None)

    for field, value in update_data.items():
        if value is not None:
            setattr(article, field, value)

    if update_data.get("title"):
        article.slug = await _unique_slug(db, article.title, exclude_id=article.id)

    if tag_list is not None:
        await tag_service.set_tags(db, article, tag_list)

    article.updated_at = utcnow()
    await db.flush()
    return await _reload(db, article.id)


async def delete_article(db: AsyncSession, slug: str) -> None:
    """Soft-delete the live article with *slug*.  Missing slugs are a no-op."""
    await db.execute(
        update(Article)
        .where(Article.slug == slug, _live())
        .values(deleted_at=utcnow())
    )


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------

def format_timestamp(value: datetime | None) -> str | None:
    """ISO-8601 UTC with millisecond precision, e.g. ``2024-01-02T03:04:05.678Z``."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def _article_to_dict(article: Article, favorited: bool, favorites_count: int, following: bool) -> dict:
    author = article.author
    return {
        "slug": article.slug,
        "title": article.title,
        "description": article.description,
        "body": article.body,
        "tagList": sorted(tag.name for tag in article.tags),
        "createdAt": format_timestamp(article.created_at),
        "updatedAt": format_timestamp(article.updated_at),
        "favorited": favorited,
        "favoritesCount": favorites_count,
        "author": user_service.profile_to_dict(author.user, following),
    }


async def serialize_articles(
    db: AsyncSession, articles: list[Article], viewer_user_id: int = 0
) -> list[dict]:
    """
    Serialise *articles* for *viewer_user_id* (0 = anonymous).

    Favorite counts, favorite status and author-following status are
    each resolved with a single query over the whole list.
    """
    if not articles:
        return []

    article_ids = [a.id for a in articles]
    counts = await favorite_service.favorite_counts(db, article_ids)

    viewer = await author_service.find_article_author(db, viewer_user_id)
    status = await favorite_service.favorite_status(db, article_ids, viewer.id if viewer else 0)
    followings = set(await user_service.get_followings(db, viewer_user_id))

    return [
        _article_to_dict(
            article,
            favorited=status.get(article.id, False),
            favorites_count=counts.get(article.id, 0),
            following=article.author.user_id in followings,
        )
        for article in articles
    ]


async def serialize_article(db: AsyncSession, article: Article, viewer_user_id: int = 0) -> dict:
    return (await serialize_articles(db, [article], viewer_user_id))[0]
