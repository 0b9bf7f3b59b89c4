"""
Tag service — resolves tag names to Tag rows and lists all tags.

Design notes
------------
- ``normalize_tags`` reads every already-existing tag in one query and
  only inserts the missing ones.  Each insert runs in its own SAVEPOINT:
  if another writer created the same name in between, the unique
  constraint on ``tags.name`` rejects ours, the savepoint is rolled back
  and the row is re-read instead.  No application-level locking.
- Requested names are not deduplicated.  A name given twice is looked up
  (or created) twice and appears twice in the returned list; the
  article's tag collection is a set, so the stored association holds it
  once.
- The full tag list is served cache-aside from Redis and invalidated
  whenever ``normalize_tags`` creates a tag.
"""
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.cache import cache
from conduit.config import settings
from conduit.models import Article, Tag

logger = logging.getLogger(__name__)

TAGS_CACHE_KEY = "tags:all"


async def _existing_tags(db: AsyncSession, names: list[str]) -> dict[str, Tag]:
    result = await db.execute(select(Tag).where(Tag.name.in_(names)))
    return {tag.name: tag for tag in result.scalars().all()}


async def _tag_by_name(db: AsyncSession, name: str) -> Tag | None:
    result = await db.execute(select(Tag).where(Tag.name == name))
    return result.scalar_one_or_none()


async def _create_tag(db: AsyncSession, name: str) -> tuple[Tag, bool]:
    """Insert *name*, falling back to the concurrently created row."""
    try:
        async with db.begin_nested():
            tag = Tag(name=name)
            db.add(tag)
    except IntegrityError:
        tag = await _tag_by_name(db, name)
        if tag is None:
            raise
        logger.debug("Tag %r already exists; reusing id=%s", name, tag.id)
        return tag, False
    return tag, True


async def normalize_tags(db: AsyncSession, names: list[str]) -> list[Tag]:
    """
    Return a Tag for every entry of *names*, creating missing tags.

    The result is positionally aligned with *names*, repeats included.
    Any storage error other than a lost creation race propagates and
    leaves the caller's transaction to be rolled back.
    """
    if not names:
        return []

    existing = await _existing_tags(db, names)
    tags: list[Tag] = []
    created = 0
    for name in names:
        tag = existing.get(name)
        if tag is None:
            tag, was_created = await _create_tag(db, name)
            created += was_created
        tags.append(tag)

    if created:
        await cache.delete_pattern(TAGS_CACHE_KEY)
    return tags


async def set_tags(db: AsyncSession, article: Article, names: list[str]) -> None:
    """Replace *article*'s tags with the normalized *names*."""
    article.tags = set(await normalize_tags(db, names))


async def get_tags(db: AsyncSession) -> list[str]:
    """Return every tag name, sorted."""
    cached = await cache.get(TAGS_CACHE_KEY)
    if cached is not None:
        return cached

    result = await db.execute(select(Tag.name).order_by(Tag.name))
    names = list(result.scalars().all())
    await cache.set(TAGS_CACHE_KEY, names, ttl=settings.CACHE_TTL_TAGS)
    return names
