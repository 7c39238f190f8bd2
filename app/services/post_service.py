"""
Post service — posts and the like / comment records that are the
authoritative source for post insights.

Like and comment writes return the fresh authoritative count so the
router can push it into the insights service without a second query.
Service functions flush but do not commit; the transaction boundary is
owned by the ``get_db`` dependency (or the router, when it must commit
before handing off to the insights service).
"""
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ResourceNotFoundError
from app.models import Comment, Like, Post, User
from app.schemas import CommentCreate, PostCreate


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _post_to_dict(post: Post) -> dict:
    return {
        "id": post.id,
        "title": post.title,
        "content": post.content,
        "user_id": post.user_id,
        "created_at": post.created_at.isoformat() if post.created_at else None,
    }


def _comment_to_dict(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "post_id": comment.post_id,
        "user_id": comment.user_id,
        "content": comment.content,
        "created_at": comment.created_at.isoformat() if comment.created_at else None,
    }


async def _require(db: AsyncSession, model, resource: str, ident: int):
    obj = await db.get(model, ident)
    if obj is None:
        raise ResourceNotFoundError(resource, "id", ident)
    return obj


# ---------------------------------------------------------------------------
# Authoritative counts
# ---------------------------------------------------------------------------

async def count_likes(db: AsyncSession, post_id: int) -> int:
    q = select(func.count()).select_from(Like).where(Like.post_id == post_id)
    return (await db.execute(q)).scalar_one()


async def count_comments(db: AsyncSession, post_id: int) -> int:
    q = select(func.count()).select_from(Comment).where(Comment.post_id == post_id)
    return (await db.execute(q)).scalar_one()


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def create_post(db: AsyncSession, data: PostCreate) -> dict:
    await _require(db, User, "User", data.user_id)
    post = Post(title=data.title, content=data.content, user_id=data.user_id)
    db.add(post)
    await db.flush()
    return _post_to_dict(post)


async def get_post(db: AsyncSession, post_id: int) -> dict:
    return _post_to_dict(await _require(db, Post, "Post", post_id))


async def delete_post(db: AsyncSession, post_id: int) -> None:
    """Delete a post together with its likes and comments."""
    post = await _require(db, Post, "Post", post_id)
    await db.execute(delete(Like).where(Like.post_id == post_id))
    await db.execute(delete(Comment).where(Comment.post_id == post_id))
    await db.delete(post)
    await db.flush()


async def like_post(db: AsyncSession, post_id: int, user_id: int) -> int:
    """
    Record that *user_id* likes *post_id* (idempotent).

    Returns the post's like count after the write.
    """
    await _require(db, Post, "Post", post_id)
    await _require(db, User, "User", user_id)

    existing = await db.execute(
        select(Like.id).where(Like.post_id == post_id, Like.user_id == user_id)
    )
    if existing.scalar_one_or_none() is None:
        db.add(Like(post_id=post_id, user_id=user_id))
        await db.flush()
    return await count_likes(db, post_id)


async def unlike_post(db: AsyncSession, post_id: int, user_id: int) -> int:
    """Remove *user_id*'s like; returns the like count after the write."""
    await _require(db, Post, "Post", post_id)
    result = await db.execute(
        delete(Like).where(Like.post_id == post_id, Like.user_id == user_id)
    )
    if result.rowcount == 0:
        raise ResourceNotFoundError("Like", "user_id", user_id)
    return await count_likes(db, post_id)


async def add_comment(db: AsyncSession, post_id: int, data: CommentCreate) -> tuple[dict, int]:
    """
    Append a comment to *post_id*.

    Returns the serialised comment and the post's comment count after
    the write.
    """
    await _require(db, Post, "Post", post_id)
    await _require(db, User, "User", data.user_id)

    comment = Comment(post_id=post_id, user_id=data.user_id, content=data.content)
    db.add(comment)
    await db.flush()
    return _comment_to_dict(comment), await count_comments(db, post_id)
