"""
Fixed-window request limits per client IP.
- general: 100 / 15 min (public reads, tracking)
- auth:    25 / 15 min (profile)
- admin:   200 / 15 min (admin reads and writes)
- strict:  3 / hour (emergency broadcast)

The counter store is passed in (app.state.rate_limiter), never a module global:
InMemoryRateLimitStore for a single process, RedisRateLimitStore when redis_url is set.
"""
import logging
import time
from typing import Any, Callable, Protocol

from fastapi import HTTPException, Request, status

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)

RATE_LIMIT_KEY_PREFIX = "ratelimit:"
TOO_MANY_REQUESTS = "Too many requests, please try again later."


class RateLimitStore(Protocol):
    async def incr(self, key: str, window_seconds: int) -> int:
        """Increment the counter for key in the current window; return the new count."""
        ...


class InMemoryRateLimitStore:
    """
    Per-process counters. Expired windows are reset on next hit, and every
    sweep_every hits all expired keys are dropped so one-off clients don't pile up.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, sweep_every: int = 1000):
        self._clock = clock
        self._sweep_every = max(1, sweep_every)
        self._hits = 0
        self._windows: dict[str, tuple[int, float]] = {}

    def __len__(self) -> int:
        return len(self._windows)

    def _sweep(self, now: float) -> None:
        stale = [key for key, (_, expires_at) in self._windows.items() if expires_at <= now]
        for key in stale:
            del self._windows[key]
        if stale:
            logger.debug("Dropped %d expired rate limit windows", len(stale))

    async def incr(self, key: str, window_seconds: int) -> int:
        now = self._clock()
        self._hits += 1
        if self._hits % self._sweep_every == 0:
            self._sweep(now)
        count, expires_at = self._windows.get(key, (0, 0.0))
        if expires_at <= now:
            count, expires_at = 0, now + window_seconds
        count += 1
        self._windows[key] = (count, expires_at)
        return count

    def clear(self) -> None:
        self._windows.clear()
        self._hits = 0


class RedisRateLimitStore:
    """
    INCR + EXPIRE on first hit. Redis errors are logged and the request is allowed (returns 0).
    """

    def __init__(self, redis_client: Any):
        self._redis = redis_client

    async def incr(self, key: str, window_seconds: int) -> int:
        try:
            full_key = f"{RATE_LIMIT_KEY_PREFIX}{key}"
            count = await self._redis.incr(full_key)
            if count == 1:
                await self._redis.expire(full_key, window_seconds)
            return int(count)
        except Exception as e:
            logger.warning("Redis rate limit incr failed for %s: %s", key, e, exc_info=False)
            return 0


def preset_limits(settings: Settings) -> dict[str, tuple[int, int]]:
    """preset name -> (window seconds, max requests)"""
    return {
        "general": (settings.rate_limit_general_window_seconds, settings.rate_limit_general_max),
        "auth": (settings.rate_limit_auth_window_seconds, settings.rate_limit_auth_max),
        "admin": (settings.rate_limit_admin_window_seconds, settings.rate_limit_admin_max),
        "strict": (settings.rate_limit_strict_window_seconds, settings.rate_limit_strict_max),
    }


class RateLimiter:
    def __init__(self, store: RateLimitStore, limits: dict[str, tuple[int, int]] | None = None):
        self.store = store
        self.limits = limits or preset_limits(get_settings())

    async def check(self, preset: str, client_key: str) -> tuple[bool, str]:
        """
        Returns (allowed, error_message).
        If allowed, error_message is empty.
        """
        window_seconds, max_requests = self.limits[preset]
        count = await self.store.incr(f"{preset}:{client_key}", window_seconds)
        if count > max_requests:
            return False, TOO_MANY_REQUESTS
        return True, ""


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or "unknown"
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def rate_limit(preset: str):
    """FastAPI dependency: Depends(rate_limit("admin")). No limiter on app.state = no limiting."""

    async def _dependency(request: Request) -> None:
        limiter: RateLimiter | None = getattr(request.app.state, "rate_limiter", None)
        if limiter is None:
            return
        allowed, message = await limiter.check(preset, client_ip(request))
        if not allowed:
            logger.info("Rate limit %s exceeded for %s", preset, client_ip(request))
            raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=message)

    return _dependency
