"""
Favorite aggregator and identity resolver tests.
"""
import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.middleware import get_query_count, reset_query_count
from conduit.models import ArticleAuthor, Favorite
from conduit.services import article_service, author_service, favorite_service

from conftest import create_article, create_user


async def _favorite_rows(db: AsyncSession) -> int:
    return (await db.execute(select(func.count()).select_from(Favorite))).scalar_one()


# ---------------------------------------------------------------------------
# Identity resolver
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_anonymous_author_touches_nothing(db_session: AsyncSession):
    reset_query_count()
    author = await author_service.get_article_author(db_session, 0)
    assert author.id == 0
    assert author.user_id == 0
    assert get_query_count() == 0


@pytest.mark.asyncio
async def test_article_author_is_idempotent(db_session: AsyncSession):
    user = await create_user(db_session, "idem")
    first = await author_service.get_article_author(db_session, user.id)
    second = await author_service.get_article_author(db_session, user.id)
    assert first.id == second.id
    rows = (
        await db_session.execute(select(func.count()).select_from(ArticleAuthor))
    ).scalar_one()
    assert rows == 1


@pytest.mark.asyncio
async def test_resolve_author_ids(db_session: AsyncSession):
    writer = await create_user(db_session, "writer")
    reader = await create_user(db_session, "reader")
    author = await author_service.get_article_author(db_session, writer.id)

    assert await author_service.resolve_author_ids(db_session, [writer.id, reader.id]) == [author.id]

    reset_query_count()
    assert await author_service.resolve_author_ids(db_session, []) == []
    assert get_query_count() == 0


# ---------------------------------------------------------------------------
# Batch aggregation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_empty_id_set_issues_no_query(db_session: AsyncSession):
    reset_query_count()
    assert await favorite_service.favorite_counts(db_session, []) == {}
    assert await favorite_service.favorite_status(db_session, [], 1) == {}
    assert get_query_count() == 0


@pytest.mark.asyncio
async def test_status_for_anonymous_viewer_is_empty(db_session: AsyncSession):
    user = await create_user(db_session, "anon_case")
    article = await create_article(db_session, user, "Anon Case")

    reset_query_count()
    assert await favorite_service.favorite_status(db_session, [article.id], 0) == {}
    assert get_query_count() == 0


@pytest.mark.asyncio
async def test_counts_and_status_are_sparse(db_session: AsyncSession):
    owner = await create_user(db_session, "owner")
    fan = await create_user(db_session, "fan")
    other = await create_user(db_session, "other")
    liked = await create_article(db_session, owner, "Liked")
    ignored = await create_article(db_session, owner, "Ignored")
    fan_author = await author_service.get_article_author(db_session, fan.id)
    other_author = await author_service.get_article_author(db_session, other.id)

    await favorite_service.favorite(db_session, liked, fan_author)
    await favorite_service.favorite(db_session, liked, other_author)

    ids = [liked.id, ignored.id]
    assert await favorite_service.favorite_counts(db_session, ids) == {liked.id: 2}
    assert await favorite_service.favorite_status(db_session, ids, fan_author.id) == {liked.id: True}


# ---------------------------------------------------------------------------
# Toggles
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_favorite_twice_keeps_one_row(db_session: AsyncSession):
    writer = await create_user(db_session, "writer_a")
    viewer = await create_user(db_session, "viewer_v")
    article = await create_article(db_session, writer, "a")
    viewer_author = await author_service.get_article_author(db_session, viewer.id)

    first = await favorite_service.favorite(db_session, article, viewer_author)
    second = await favorite_service.favorite(db_session, article, viewer_author)

    assert first.id == second.id
    assert await _favorite_rows(db_session) == 1
    assert await favorite_service.favorite_counts(db_session, [article.id]) == {article.id: 1}

    data = await article_service.serialize_article(db_session, article, viewer.id)
    assert data["favorited"] is True
    assert data["favoritesCount"] == 1


@pytest.mark.asyncio
async def test_unfavorite_when_not_favorited_is_noop(db_session: AsyncSession):
    writer = await create_user(db_session, "writer_b")
    viewer = await create_user(db_session, "viewer_b")
    fan = await create_user(db_session, "fan_b")
    article = await create_article(db_session, writer, "Untouched")
    viewer_author = await author_service.get_article_author(db_session, viewer.id)
    fan_author = await author_service.get_article_author(db_session, fan.id)
    await favorite_service.favorite(db_session, article, fan_author)

    await favorite_service.unfavorite(db_session, article, viewer_author)

    assert await favorite_service.favorite_counts(db_session, [article.id]) == {article.id: 1}


@pytest.mark.asyncio
async def test_unfavorite_removes_favorite(db_session: AsyncSession):
    writer = await create_user(db_session, "writer_c")
    viewer = await create_user(db_session, "viewer_c")
    article = await create_article(db_session, writer, "Fickle")
    viewer_author = await author_service.get_article_author(db_session, viewer.id)

    await favorite_service.favorite(db_session, article, viewer_author)
    await favorite_service.unfavorite(db_session, article, viewer_author)
    await favorite_service.unfavorite(db_session, article, viewer_author)

    assert await favorite_service.favorite_counts(db_session, [article.id]) == {}
    assert await favorite_service.favorite_status(db_session, [article.id], viewer_author.id) == {}


@pytest.mark.asyncio
async def test_serialize_articles_batches_favorites(db_session: AsyncSession):
    writer = await create_user(db_session, "batch_writer")
    viewer = await create_user(db_session, "batch_viewer")
    viewer_author = await author_service.get_article_author(db_session, viewer.id)
    articles = [await create_article(db_session, writer, f"Batch {i}") for i in range(4)]
    await favorite_service.favorite(db_session, articles[1], viewer_author)

    page = await article_service.list_articles(db_session)
    data = await article_service.serialize_articles(db_session, page.articles, viewer.id)

    by_slug = {d["slug"]: d for d in data}
    assert by_slug["batch-1"]["favorited"] is True
    assert by_slug["batch-1"]["favoritesCount"] == 1
    assert by_slug["batch-0"]["favorited"] is False
    assert by_slug["batch-0"]["favoritesCount"] == 0
