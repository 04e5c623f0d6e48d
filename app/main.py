import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.config import get_settings
from app.core.redis import close_redis, connect_redis
from app.logging_config import configure_logging
from app.routers import admin, analytics, announcements, profile
from app.services.rate_limiter import InMemoryRateLimitStore, RateLimiter, RedisRateLimitStore

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    redis_client = await connect_redis()
    store = RedisRateLimitStore(redis_client) if redis_client is not None else InMemoryRateLimitStore()
    app.state.rate_limiter = RateLimiter(store)
    logger.info("Rate limiting with %s", type(store).__name__)
    try:
        yield
    finally:
        await close_redis(redis_client)


app = FastAPI(title="Campus Announcements API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.resolved_frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(announcements.router)
app.include_router(admin.router)
app.include_router(profile.router)
app.include_router(analytics.router)
app.include_router(analytics.redirect_router)


@app.get("/")
def root():
    return {"message": "Campus Announcements API", "docs": "/docs"}


@app.get("/health")
def health():
    return {"status": "ok"}
