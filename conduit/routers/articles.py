from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import get_db
from conduit.dependencies import (
    ArticleFilterParams,
    ListingParams,
    get_snapshot_db,
    get_viewer_id,
    require_viewer_id,
)
from conduit.models import Article, ArticleAuthor
from conduit.schemas import (
    ArticleCreateRequest,
    ArticleUpdateRequest,
    CommentCreateRequest,
    MultipleArticlesResponse,
    MultipleCommentsResponse,
    SingleArticleResponse,
    SingleCommentResponse,
)
from conduit.services import (
    article_service,
    author_service,
    comment_service,
    favorite_service,
    feed_service,
    user_service,
)

router = APIRouter(prefix="/api/articles", tags=["articles"])


async def _current_author(db: AsyncSession, viewer_id: int) -> ArticleAuthor:
    user = await user_service.get_user(db, viewer_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return await author_service.get_article_author(db, user.id)


async def _article_or_404(db: AsyncSession, slug: str) -> Article:
    article = await article_service.get_article(db, slug)
    if article is None:
        raise HTTPException(status_code=404, detail="Article not found")
    return article


async def _page_response(db: AsyncSession, page: article_service.ArticlePage, viewer_id: int) -> dict:
    return {
        "articles": await article_service.serialize_articles(db, page.articles, viewer_id),
        "articlesCount": page.total,
    }


@router.get("", response_model=MultipleArticlesResponse)
async def list_articles(
    params: ArticleFilterParams = Depends(),
    viewer_id: int = Depends(get_viewer_id),
    db: AsyncSession = Depends(get_snapshot_db),
):
    page = await article_service.list_articles(
        db,
        tag=params.tag,
        author=params.author,
        limit=params.limit,
        offset=params.offset,
        favorited=params.favorited,
    )
    return await _page_response(db, page, viewer_id)


@router.get("/feed", response_model=MultipleArticlesResponse)
async def feed(
    params: ListingParams = Depends(),
    viewer_id: int = Depends(require_viewer_id),
    db: AsyncSession = Depends(get_snapshot_db),
):
    viewer = await _current_author(db, viewer_id)
    page = await feed_service.get_feed(db, viewer, limit=params.limit, offset=params.offset)
    return await _page_response(db, page, viewer_id)


@router.post("", status_code=201, response_model=SingleArticleResponse)
async def create_article(
    data: ArticleCreateRequest,
    viewer_id: int = Depends(require_viewer_id),
    db: AsyncSession = Depends(get_db),
):
    author = await _current_author(db, viewer_id)
    article = await article_service.create_article(db, author, data.article)
    return {"article": await article_service.serialize_article(db, article, viewer_id)}


@router.get("/{slug}", response_model=SingleArticleResponse)
async def get_article(
    slug: str,
    viewer_id: int = Depends(get_viewer_id),
    db: AsyncSession = Depends(get_db),
):
    article = await _article_or_404(db, slug)
    return {"article": await article_service.serialize_article(db, article, viewer_id)}


@router.put("/{slug}", response_model=SingleArticleResponse)
async def update_article(
    slug: str,
    data: ArticleUpdateRequest,
    viewer_id: int = Depends(require_viewer_id),
    db: AsyncSession = Depends(get_db),
):
    article = await _article_or_404(db, slug)
    if article.author.user_id != viewer_id:
        raise HTTPException(status_code=403, detail="Only the author can edit this article")
    article = await article_service.update_article(db, article, data.article)
    return {"article": await article_service.serialize_article(db, article, viewer_id)}


@router.delete("/{slug}", status_code=204)
async def delete_article(
    slug: str,
    viewer_id: int = Depends(require_viewer_id),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.get_article(db, slug)
    if article is not None and article.author.user_id != viewer_id:
        raise HTTPException(status_code=403, detail="Only the author can delete this article")
    await article_service.delete_article(db, slug)


@router.post("/{slug}/favorite", response_model=SingleArticleResponse)
async def favorite_article(
    slug: str,
    viewer_id: int = Depends(require_viewer_id),
    db: AsyncSession = Depends(get_db),
):
    article = await _article_or_404(db, slug)
    author = await _current_author(db, viewer_id)
    await favorite_service.favorite(db, article, author)
    return {"article": await article_service.serialize_article(db, article, viewer_id)}


@router.delete("/{slug}/favorite", response_model=SingleArticleResponse)
async def unfavorite_article(
    slug: str,
    viewer_id: int = Depends(require_viewer_id),
    db: AsyncSession = Depends(get_db),
):
    article = await _article_or_404(db, slug)
    author = await _current_author(db, viewer_id)
    await favorite_service.unfavorite(db, article, author)
    return {"article": await article_service.serialize_article(db, article, viewer_id)}


@router.get("/{slug}/comments", response_model=MultipleCommentsResponse)
async def list_comments(
    slug: str,
    viewer_id: int = Depends(get_viewer_id),
    db: AsyncSession = Depends(get_db),
):
    article = await _article_or_404(db, slug)
    comments = await comment_service.get_comments(db, article)
    return {"comments": await comment_service.serialize_comments(db, comments, viewer_id)}


@router.post("/{slug}/comments", status_code=201, response_model=SingleCommentResponse)
async def add_comment(
    slug: str,
    data: CommentCreateRequest,
    viewer_id: int = Depends(require_viewer_id),
    db: AsyncSession = Depends(get_db),
):
    article = await _article_or_404(db, slug)
    author = await _current_author(db, viewer_id)
    comment = await comment_service.add_comment(db, article, author, data.comment.body)
    return {"comment": (await comment_service.serialize_comments(db, [comment], viewer_id))[0]}


@router.delete("/{slug}/comments/{comment_id}", status_code=204)
async def delete_comment(
    slug: str,
    comment_id: int,
    viewer_id: int = Depends(require_viewer_id),
    db: AsyncSession = Depends(get_db),
):
    article = await _article_or_404(db, slug)
    author = await _current_author(db, viewer_id)
    await comment_service.delete_comment(db, article, author, comment_id)
