from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# --- User ---

class UserBase(BaseModel):
    username: str = Field(min_length=1, max_length=50)
    email: str = Field(max_length=255)
    full_name: str | None = Field(None, max_length=150)
    bio: str | None = None
    role: str = Field("USER", max_length=50)
    specializations: list[str] = []


class UserCreate(UserBase):
    # bcrypt only reads the first 72 bytes.
    password: str = Field(min_length=1, max_length=72)


class UserUpdate(BaseModel):
    """Sparse update: ``None`` (or absent) leaves the stored value alone."""

    username: str | None = Field(None, min_length=1, max_length=50)
    email: str | None = Field(None, max_length=255)
    password: str | None = Field(None, min_length=1, max_length=72)
    full_name: str | None = Field(None, max_length=150)
    bio: str | None = None
    role: str | None = Field(None, max_length=50)
    specializations: list[str] | None = None


class UserResponse(BaseModel):
    id: int
    username: str
    email: str | None
    full_name: str | None = None
    bio: str | None = None
    role: str
    specializations: list[str] = []
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class UserCounts(BaseModel):
    followers: int
    following: int


# --- Post ---

class PostCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    content: str
    user_id: int


class PostResponse(BaseModel):
    id: int
    title: str
    content: str
    user_id: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class LikeCreate(BaseModel):
    user_id: int


class CommentCreate(BaseModel):
    content: str = Field(min_length=1)
    user_id: int


class CommentResponse(BaseModel):
    id: int
    post_id: int
    user_id: int
    content: str
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# --- Insights ---

class ViewEvent(BaseModel):
    viewer_id: str = Field(min_length=1, max_length=255)
    model_config = ConfigDict(str_strip_whitespace=True)


class InsightsStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"
    REPAIRED = "repaired"


class PostInsightsResponse(BaseModel):
    post_id: int
    views: int
    unique_viewers: int
    like_count: int
    comment_count: int
    share_count: int
    engagement_rate: float


class InsightsResultResponse(BaseModel):
    status: InsightsStatus
    insights: PostInsightsResponse


# --- Metrics ---

class MetricsResponse(BaseModel):
    total_users: int
    total_posts: int
    total_likes: int
    total_comments: int
    total_follows: int
    avg_likes_per_post: float
    live_updates: dict = {}
