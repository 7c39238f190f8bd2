"""
Test infrastructure for the SkillShare API.

Strategy
--------
- SQLite in-memory via aiosqlite with StaticPool, so every session (the
  request-scoped ones and the insights service's own) shares one
  connection and therefore one database.
- The app's get_db dependency is overridden with the test session factory,
  and get_insights_service is overridden per test with a fresh service
  bound to the same factory, a fresh ViewerRegistry and a recording
  live-update channel.
- Tables are created before each test and dropped after.
- bcrypt runs at its minimum cost factor to keep the suite fast.
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from app.config import settings
from app.database import Base, get_db
from app.dependencies import get_insights_service
from app.main import app
from app.middleware import install_query_counter
from app.models import Comment, Follow, Like, Post, User
from app.realtime import live_updates
from app.services.insights_service import PostInsightsService
from app.services.user_service import hash_password
from app.viewers import ViewerRegistry

settings.BCRYPT_ROUNDS = 4

# ---------------------------------------------------------------------------
# Test database engine — SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------

class RecordingChannel:
    """Stands in for LiveUpdateChannel; remembers every publish."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, dict]] = []

    async def publish(self, topic: str, payload: dict) -> bool:
        self.messages.append((topic, dict(payload)))
        return True


class BrokenChannel:
    async def publish(self, topic: str, payload: dict) -> bool:
        raise ConnectionError("redis is down")


class UnreachableSession:
    """Async context manager that fails like a refused database connection."""

    async def __aenter__(self):
        raise ConnectionRefusedError("database unreachable")

    async def __aexit__(self, *exc_info):
        return False


def unreachable_session_factory():
    return UnreachableSession()


class FlakySessionFactory:
    """Fails the first *failures* session openings, then behaves normally."""

    def __init__(self, factory, failures: int = 1) -> None:
        self._factory = factory
        self.failures = failures

    def __call__(self):
        if self.failures > 0:
            self.failures -= 1
            return UnreachableSession()
        return self._factory()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    async with async_session_test() as session:
        yield session


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def insights_service(channel: RecordingChannel) -> PostInsightsService:
    return PostInsightsService(async_session_test, channel, ViewerRegistry())


@pytest_asyncio.fixture
async def async_client(insights_service: PostInsightsService) -> AsyncClient:
    """
    httpx.AsyncClient wired to the app via ASGITransport, with Redis
    disabled and the insights service bound to the test database.
    """
    live_updates._redis = None
    app.dependency_overrides[get_insights_service] = lambda: insights_service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.pop(get_insights_service, None)


# ---------------------------------------------------------------------------
# Seeding helpers (committed, so the insights service's sessions see them)
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def make_user(db_session: AsyncSession):
    counter = {"n": 0}

    async def _make(username: str | None = None, email: str | None = None, **fields) -> User:
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        fields.setdefault("specializations", [])
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            password_hash=hash_password("secret"),
            **fields,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest_asyncio.fixture
async def make_post(db_session: AsyncSession, make_user):
    async def _make(author: User | None = None, likes: int = 0, comments: int = 0) -> Post:
        author = author or await make_user()
        post = Post(title="Knife skills 101", content="Keep the tip down.", user_id=author.id)
        db_session.add(post)
        await db_session.flush()
        for i in range(likes):
            liker = await make_user()
            db_session.add(Like(post_id=post.id, user_id=liker.id))
        for i in range(comments):
            db_session.add(Comment(post_id=post.id, user_id=author.id, content=f"note {i}"))
        await db_session.commit()
        return post

    return _make


@pytest_asyncio.fixture
async def make_follow(db_session: AsyncSession):
    async def _make(follower: User, followed: User) -> Follow:
        edge = Follow(follower_id=follower.id, followed_id=followed.id)
        db_session.add(edge)
        await db_session.commit()
        return edge

    return _make
