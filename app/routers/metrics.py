from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.models import Comment, Follow, Like, Post, User
from app.schemas import MetricsResponse
from app.realtime import live_updates

router = APIRouter(prefix="/api/metrics", tags=["metrics"])

async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()

@router.get("", response_model=MetricsResponse)
async def get_metrics(db: AsyncSession = Depends(get_db)):
    total_posts = await _count(db, Post)
    total_likes = await _count(db, Like)

    avg_likes = total_likes / total_posts if total_posts > 0 else 0

    return MetricsResponse(
        total_users=await _count(db, User),
        total_posts=total_posts,
        total_likes=total_likes,
        total_comments=await _count(db, Comment),
        total_follows=await _count(db, Follow),
        avg_likes_per_post=round(avg_likes, 2),
        live_updates=live_updates.stats,
    )
