"""
Follow service — directed follower -> followed edges between users.

Edges are what ``user_service.get_user_counts`` counts.
"""
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ConflictError, ResourceNotFoundError
from app.models import Follow, User


async def _require_user(db: AsyncSession, user_id: int) -> None:
    if await db.get(User, user_id) is None:
        raise ResourceNotFoundError("User", "id", user_id)


async def follow_user(db: AsyncSession, follower_id: int, followed_id: int) -> dict:
    """
    Make *follower_id* follow *followed_id*.

    Idempotent: following someone twice returns the existing edge.
    """
    if follower_id == followed_id:
        raise ConflictError("Users cannot follow themselves")
    await _require_user(db, follower_id)
    await _require_user(db, followed_id)

    result = await db.execute(
        select(Follow).where(
            Follow.follower_id == follower_id, Follow.followed_id == followed_id
        )
    )
    edge = result.scalar_one_or_none()
    if edge is None:
        edge = Follow(follower_id=follower_id, followed_id=followed_id)
        db.add(edge)
        await db.flush()

    return {
        "id": edge.id,
        "follower_id": edge.follower_id,
        "followed_id": edge.followed_id,
    }


async def unfollow_user(db: AsyncSession, follower_id: int, followed_id: int) -> bool:
    """Remove the edge; returns False when there was nothing to remove."""
    result = await db.execute(
        delete(Follow).where(
            Follow.follower_id == follower_id, Follow.followed_id == followed_id
        )
    )
    return result.rowcount > 0
