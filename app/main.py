import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.config import settings
from app.exceptions import register_exception_handlers
from app.middleware import RequestContextMiddleware
from app.realtime import live_updates
from app.routers import metrics, posts, users

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    try:
        await live_updates.connect()
    except Exception as exc:
        logger.warning("Live updates unavailable, continuing without them: %s", exc)
    yield
    # Shutdown
    await live_updates.disconnect()

app = FastAPI(
    title="SkillShare API",
    description="User profiles and live post insights for a skill-sharing network",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Routers
app.include_router(users.router)
app.include_router(posts.router)
app.include_router(metrics.router)

@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0", "env": settings.APP_ENV}
