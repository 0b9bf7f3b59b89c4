"""
Comment service — plain CRUD for comments on an article.

Deletes are soft and idempotent: removing a comment that is already gone
(or never existed) succeeds, and the router decides what that means for
the response.
"""
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from conduit.models import Article, ArticleAuthor, Comment, utcnow
from conduit.services import user_service
from conduit.services.article_service import format_timestamp


def _comment_to_dict(comment: Comment, following: bool) -> dict:
    return {
        "id": comment.id,
        "body": comment.body,
        "createdAt": format_timestamp(comment.created_at),
        "updatedAt": format_timestamp(comment.updated_at),
        "author": user_service.profile_to_dict(comment.author.user, following),
    }


def _comment_query():
    return select(Comment).options(
        joinedload(Comment.author).joinedload(ArticleAuthor.user)
    ).execution_options(populate_existing=True)


async def add_comment(
    db: AsyncSession, article: Article, author: ArticleAuthor, body: str
) -> Comment:
    comment = Comment(body=body, article_id=article.id, author_id=author.id)
    db.add(comment)
    await db.flush()

    result = await db.execute(_comment_query().where(Comment.id == comment.id))
    return result.unique().scalar_one()


async def get_comments(db: AsyncSession, article: Article) -> list[Comment]:
    """Live comments on *article*, oldest first, authors preloaded."""
    q = (
        _comment_query()
        .where(Comment.article_id == article.id, Comment.deleted_at.is_(None))
        .order_by(Comment.created_at, Comment.id)
    )
    result = await db.execute(q)
    return list(result.unique().scalars().all())


async def delete_comment(
    db: AsyncSession, article: Article, author: ArticleAuthor, comment_id: int
) -> None:
    """Soft-delete *author*'s comment; anything else is left alone."""
    await db.execute(
        update(Comment)
        .where(
            Comment.id == comment_id,
            Comment.article_id == article.id,
            Comment.author_id == author.id,
            Comment.deleted_at.is_(None),
        )
        .values(deleted_at=utcnow())
    )


async def serialize_comments(
    db: AsyncSession, comments: list[Comment], viewer_user_id: int = 0
) -> list[dict]:
    followings = set(await user_service.get_followings(db, viewer_user_id))
    return [_comment_to_dict(c, c.author.user_id in followings) for c in comments]
