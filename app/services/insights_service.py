"""
Post insights service — one aggregate metrics row per post.

Design notes
------------
- Metrics favour availability: every public method catches store
  failures at its boundary, logs them, and returns an ``InsightsResult``
  whose ``status`` says what happened (``ok``, ``degraded`` when a zeroed
  default was returned, ``repaired`` when a direct update failed and the
  reconciliation path succeeded).  Nothing here raises to the router
  except caller errors such as a blank viewer id.
- Unlike the request-scoped services, this one owns its transactions
  through an injected ``async_sessionmaker``.  ``increment_views`` must
  commit inside its per-post lock, otherwise two requests could both read
  the same ``views`` value from separate uncommitted transactions.
- Every successful write is published on the live-update channel after
  the commit.  Publishing is best-effort and never undoes the write.
"""
import logging
from dataclasses import dataclass

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.models import PostInsights
from app.realtime import LiveUpdateChannel
from app.schemas import InsightsStatus
from app.services import post_service
from app.viewers import ViewerRegistry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def compute_engagement_rate(likes: int, comments: int, shares: int, views: int) -> float:
    """
    Percentage of (likes + comments + shares) over views, clamped to
    [0, 100].  The view denominator is floored at 1; any arithmetic
    failure yields 0.0 rather than a stale value.
    """
    try:
        engagements = max(0, likes + comments + shares)
        rate = engagements / max(1, views) * 100
        return max(0.0, min(100.0, float(rate)))
    except Exception as exc:
        logger.error("Error calculating engagement rate: %s", exc)
        return 0.0


def default_insights(post_id: int) -> dict:
    return {
        "post_id": post_id,
        "views": 0,
        "unique_viewers": 0,
        "like_count": 0,
        "comment_count": 0,
        "share_count": 0,
        "engagement_rate": 0.0,
    }


def _insights_to_dict(insights: PostInsights) -> dict:
    return {
        "post_id": insights.post_id,
        "views": insights.views,
        "unique_viewers": insights.unique_viewers,
        "like_count": insights.like_count,
        "comment_count": insights.comment_count,
        "share_count": insights.share_count,
        "engagement_rate": insights.engagement_rate,
    }


@dataclass(frozen=True)
class InsightsResult:
    insights: dict
    status: InsightsStatus = InsightsStatus.OK

    def to_dict(self) -> dict:
        return {"status": self.status.value, "insights": self.insights}


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class PostInsightsService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        channel: LiveUpdateChannel,
        viewers: ViewerRegistry | None = None,
        topic_prefix: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._channel = channel
        self.viewers = viewers if viewers is not None else ViewerRegistry()
        self._topic_prefix = topic_prefix if topic_prefix is not None else settings.INSIGHTS_TOPIC_PREFIX

    def topic_for(self, post_id: int) -> str:
        return f"{self._topic_prefix}{post_id}"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load_or_create(self, session: AsyncSession, post_id: int) -> PostInsights:
        """
        Return the insights row for *post_id*, inserting a zeroed one if
        needed.  Must be the first statement issued on *session*.
        """
        q = select(PostInsights).where(PostInsights.post_id == post_id)
        insights = (await session.execute(q)).scalar_one_or_none()
        if insights is not None:
            return insights

        insights = PostInsights(
            post_id=post_id,
            views=0,
            unique_viewers=0,
            like_count=0,
            comment_count=0,
            share_count=0,
            engagement_rate=0.0,
        )
        session.add(insights)
        try:
            await session.flush()
        except IntegrityError:
            # Another request created the row first; use theirs.
            await session.rollback()
            insights = (await session.execute(q)).scalar_one()
        return insights

    @staticmethod
    def _refresh_engagement(insights: PostInsights) -> None:
        insights.engagement_rate = compute_engagement_rate(
            insights.like_count,
            insights.comment_count,
            insights.share_count,
            insights.views,
        )

    async def _save(self, post_id: int, reconcile: bool = False, **fields) -> dict:
        """
        Load-or-create, apply *fields* (and authoritative like/comment
        counts when *reconcile* is set), recompute the rate, commit and
        broadcast.  Store failures propagate to the public caller.
        """
        async with self._session_factory() as session:
            insights = await self._load_or_create(session, post_id)
            if reconcile:
                insights.like_count = await post_service.count_likes(session, post_id)
                insights.comment_count = await post_service.count_comments(session, post_id)
            for name, value in fields.items():
                setattr(insights, name, value)
            self._refresh_engagement(insights)
            data = _insights_to_dict(insights)
            await session.commit()

        await self._broadcast(post_id, data)
        return data

    async def _broadcast(self, post_id: int, data: dict) -> None:
        try:
            await self._channel.publish(self.topic_for(post_id), data)
        except Exception as exc:
            logger.error("Error broadcasting insights for post %s: %s", post_id, exc)

    async def _repair(self, post_id: int) -> InsightsResult:
        result = await self.sync_insights(post_id)
        if result.status is InsightsStatus.OK:
            return InsightsResult(result.insights, InsightsStatus.REPAIRED)
        return result

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def get_insights(self, post_id: int) -> InsightsResult:
        """Return the post's insights, creating a zeroed row on first access."""
        try:
            async with self._session_factory() as session:
                insights = await self._load_or_create(session, post_id)
                data = _insights_to_dict(insights)
                await session.commit()
        except Exception:
            logger.exception("Error fetching insights for post %s", post_id)
            return InsightsResult(default_insights(post_id), InsightsStatus.DEGRADED)
        return InsightsResult(data)

    async def increment_views(self, post_id: int, viewer_id: str) -> InsightsResult:
        """
        Count one view of *post_id* by *viewer_id*.

        ``views`` always grows by one.  ``unique_viewers`` is set to the size
        of the post's viewer set when *viewer_id* is new to it, so the stored
        figure converges on the set even if the two drifted apart.
        """
        if not viewer_id or not viewer_id.strip():
            raise ValueError("viewer_id must not be empty")

        async with self.viewers.lock_for(post_id):
            try:
                async with self._session_factory() as session:
                    insights = await self._load_or_create(session, post_id)
                    insights.views += 1
                    if self.viewers.add(post_id, viewer_id):
                        insights.unique_viewers = self.viewers.count(post_id)
                    self._refresh_engagement(insights)
                    data = _insights_to_dict(insights)
                    await session.commit()
            except Exception:
                logger.exception("Error incrementing views for post %s", post_id)
                return InsightsResult(default_insights(post_id), InsightsStatus.DEGRADED)

            # Published under the lock so subscribers see view counts in order.
            await self._broadcast(post_id, data)
        return InsightsResult(data)

    async def sync_insights(self, post_id: int) -> InsightsResult:
        """Recompute like and comment counts from the like/comment tables."""
        try:
            data = await self._save(post_id, reconcile=True)
        except Exception:
            logger.exception("Error syncing insights for post %s", post_id)
            return InsightsResult(default_insights(post_id), InsightsStatus.DEGRADED)
        logger.debug(
            "Synced insights for post %s: likes=%s, comments=%s",
            post_id,
            data["like_count"],
            data["comment_count"],
        )
        return InsightsResult(data)

    async def update_likes(self, post_id: int, like_count: int) -> InsightsResult:
        """Set ``like_count`` directly; reconcile instead if the write fails."""
        try:
            data = await self._save(post_id, like_count=like_count)
        except Exception:
            logger.exception("Error updating likes for post %s, falling back to sync", post_id)
            return await self._repair(post_id)
        logger.debug("Updated likes for post %s: %s", post_id, like_count)
        return InsightsResult(data)

    async def update_comments(self, post_id: int, comment_count: int) -> InsightsResult:
        """Set ``comment_count`` directly; reconcile instead if the write fails."""
        try:
            data = await self._save(post_id, comment_count=comment_count)
        except Exception:
            logger.exception("Error updating comments for post %s, falling back to sync", post_id)
            return await self._repair(post_id)
        logger.debug("Updated comments for post %s: %s", post_id, comment_count)
        return InsightsResult(data)

    async def delete_insights(self, post_id: int) -> bool:
        """
        Drop the post's insights row and its in-memory viewer set.

        Returns True when a row was deleted.
        """
        deleted = False
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(PostInsights).where(PostInsights.post_id == post_id)
                )
                await session.commit()
                deleted = result.rowcount > 0
        except Exception:
            logger.exception("Error deleting insights for post %s", post_id)
        self.viewers.forget(post_id)
        return deleted
