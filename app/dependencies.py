from app.database import async_session
from app.realtime import live_updates
from app.services.insights_service import PostInsightsService
from app.viewers import ViewerRegistry

# One registry per process: viewer sets and view-count locks must be shared
# by every request that touches the same post.
viewer_registry = ViewerRegistry()

insights_service = PostInsightsService(async_session, live_updates, viewer_registry)


def get_insights_service() -> PostInsightsService:
    """
    FastAPI dependency returning the process-wide insights service.

    Tests override it with a service bound to the test engine::

        app.dependency_overrides[get_insights_service] = lambda: service
    """
    return insights_service
