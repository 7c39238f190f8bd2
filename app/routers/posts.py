from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.dependencies import get_insights_service
from app.schemas import (
    CommentCreate,
    CommentResponse,
    InsightsResultResponse,
    LikeCreate,
    PostCreate,
    PostResponse,
    ViewEvent,
)
from app.services import post_service
from app.services.insights_service import PostInsightsService

router = APIRouter(prefix="/api/posts", tags=["posts"])

# Like/comment handlers commit before touching insights: the insights
# service works in its own transactions and must see the new rows when it
# falls back to reconciliation.

@router.post("", status_code=201, response_model=PostResponse)
async def create_post(data: PostCreate, db: AsyncSession = Depends(get_db)):
    return await post_service.create_post(db, data)

@router.get("/{post_id}", response_model=PostResponse)
async def get_post(post_id: int, db: AsyncSession = Depends(get_db)):
    return await post_service.get_post(db, post_id)

@router.delete("/{post_id}", status_code=204)
async def delete_post(
    post_id: int,
    db: AsyncSession = Depends(get_db),
    insights: PostInsightsService = Depends(get_insights_service),
):
    await post_service.delete_post(db, post_id)
    await db.commit()
    await insights.delete_insights(post_id)
    return Response(status_code=204)

@router.post("/{post_id}/likes", status_code=201, response_model=InsightsResultResponse)
async def like_post(
    post_id: int,
    data: LikeCreate,
    db: AsyncSession = Depends(get_db),
    insights: PostInsightsService = Depends(get_insights_service),
):
    like_count = await post_service.like_post(db, post_id, data.user_id)
    await db.commit()
    return (await insights.update_likes(post_id, like_count)).to_dict()

@router.delete("/{post_id}/likes/{user_id}", status_code=204)
async def unlike_post(
    post_id: int,
    user_id: int,
    db: AsyncSession = Depends(get_db),
    insights: PostInsightsService = Depends(get_insights_service),
):
    like_count = await post_service.unlike_post(db, post_id, user_id)
    await db.commit()
    await insights.update_likes(post_id, like_count)
    return Response(status_code=204)

@router.post("/{post_id}/comments", status_code=201, response_model=CommentResponse)
async def add_comment(
    post_id: int,
    data: CommentCreate,
    db: AsyncSession = Depends(get_db),
    insights: PostInsightsService = Depends(get_insights_service),
):
    comment, comment_count = await post_service.add_comment(db, post_id, data)
    await db.commit()
    await insights.update_comments(post_id, comment_count)
    return comment

# --- Insights ---

@router.get("/{post_id}/insights", response_model=InsightsResultResponse)
async def get_insights(
    post_id: int,
    db: AsyncSession = Depends(get_db),
    insights: PostInsightsService = Depends(get_insights_service),
):
    await post_service.get_post(db, post_id)
    return (await insights.get_insights(post_id)).to_dict()

@router.post("/{post_id}/views", response_model=InsightsResultResponse)
async def record_view(
    post_id: int,
    event: ViewEvent,
    db: AsyncSession = Depends(get_db),
    insights: PostInsightsService = Depends(get_insights_service),
):
    await post_service.get_post(db, post_id)
    return (await insights.increment_views(post_id, event.viewer_id)).to_dict()

@router.post("/{post_id}/insights/sync", response_model=InsightsResultResponse)
async def sync_insights(
    post_id: int,
    db: AsyncSession = Depends(get_db),
    insights: PostInsightsService = Depends(get_insights_service),
):
    await post_service.get_post(db, post_id)
    return (await insights.sync_insights(post_id)).to_dict()
