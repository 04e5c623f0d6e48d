"""
Optional async Redis client for the rate-limit store. If redis_url is empty or connection fails,
returns None and the app falls back to the in-memory store.
"""
import logging
from typing import Any

from app.config import get_settings

logger = logging.getLogger(__name__)


async def connect_redis(url: str | None = None) -> Any:
    """One async Redis client or None if disabled/unavailable. Caller owns the client (see close_redis)."""
    url = (url if url is not None else get_settings().redis_url or "").strip()
    if not url:
        return None
    try:
        from redis.asyncio import Redis
        client = Redis.from_url(url, decode_responses=True)
        await client.ping()
        logger.info("Redis connected: %s", url.split("@")[-1] if "@" in url else url)
        return client
    except Exception as e:
        logger.warning("Redis unavailable (using in-memory rate limits): %s", e, exc_info=False)
        return None


async def close_redis(client: Any) -> None:
    """Graceful shutdown: close Redis connection."""
    if client is None:
        return
    try:
        await client.aclose()
    except Exception as e:
        logger.warning("Redis close error: %s", e)
