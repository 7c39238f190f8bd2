import json
import logging

import redis.asyncio as redis

from app.config import settings

logger = logging.getLogger(__name__)


class LiveUpdateChannel:
    """
    Fire-and-forget publisher backed by Redis pub/sub.

    ``publish`` is safe to call even when Redis is unavailable: the message
    is dropped, the failure is counted and logged, and nothing is raised to
    the caller.  Subscribers (a WebSocket gateway, another worker, ...)
    attach to the same Redis channels independently of this process.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None
        self._published: int = 0
        self._dropped: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection pool.  Called once at application startup."""
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Live updates connected: %s", settings.REDIS_URL)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis ping failed, live updates will be dropped: %s", exc)

    async def disconnect(self) -> None:
        """Close the connection pool.  Called once at application shutdown."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    async def publish(self, topic: str, payload: dict) -> bool:
        """
        Publish *payload* as JSON on *topic*.

        Returns True when Redis accepted the message (regardless of how many
        subscribers received it), False when it was dropped.
        """
        if not self._redis:
            self._dropped += 1
            return False
        try:
            receivers = await self._redis.publish(topic, json.dumps(payload, default=str))
        except Exception as exc:
            logger.warning("Live update publish failed for topic=%r: %s", topic, exc)
            self._dropped += 1
            return False
        self._published += 1
        logger.debug("Published to %s (%d receiver(s))", topic, receivers)
        return True

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict:
        """Snapshot of publish counters for the metrics endpoint."""
        return {
            "connected": self._redis is not None,
            "published": self._published,
            "dropped": self._dropped,
        }


# Module-level singleton shared across all request handlers.
live_updates = LiveUpdateChannel()
