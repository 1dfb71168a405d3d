"""
Rate limiting using a Redis sliding window.

Usage:
    from medresponse.api.middleware.rate_limit import rate_limit

    # As a dependency on a route:
    @router.post("/emergencies", dependencies=[rate_limit(max_requests=10, window_seconds=60)])
    async def create_emergency(...):
        ...

    # Global middleware is attached in main.py via RateLimitMiddleware.
"""

import time
import logging

import redis.asyncio as aioredis
from fastapi import Request, HTTPException, Depends
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from medresponse.config import get_settings

logger = logging.getLogger(__name__)

# In-memory fallback when Redis is unavailable
_memory_store: dict[str, list[float]] = {}
# Time after which each key holds no live hits
_memory_expiry: dict[str, float] = {}


async def _check_rate_limit_redis(
    redis_client, key: str, max_requests: int, window: int
) -> tuple[bool, int]:
    """Check rate limit using Redis sorted set sliding window."""
    now = time.time()
    pipeline = redis_client.pipeline()
    pipeline.zremrangebyscore(key, 0, now - window)
    pipeline.zadd(key, {str(now): now})
    pipeline.zcard(key)
    pipeline.expire(key, window)
    results = await pipeline.execute()
    count = results[2]
    return count > max_requests, count


def _check_rate_limit_memory(
    key: str, max_requests: int, window: int
) -> tuple[bool, int]:
    """Fallback in-memory rate limiter (single-process only)."""
    now = time.time()
    for stale in [k for k, expires in _memory_expiry.items() if expires <= now]:
        del _memory_expiry[stale]
        _memory_store.pop(stale, None)
    hits = [t for t in _memory_store.get(key, []) if t > now - window]
    hits.append(now)
    _memory_store[key] = hits
    _memory_expiry[key] = now + window
    return len(hits) > max_requests, len(hits)


async def check_rate_limit(key: str, max_requests: int, window: int) -> tuple[bool, int]:
    settings = get_settings()
    try:
        r = aioredis.from_url(settings.REDIS_URL, decode_responses=True, socket_connect_timeout=1)
        try:
            return await _check_rate_limit_redis(r, key, max_requests, window)
        finally:
            await r.aclose()
    except Exception as e:
        logger.debug("Redis rate limiter unavailable (%s), using in-memory window", e)
        return _check_rate_limit_memory(key, max_requests, window)


def _get_client_ip(request: Request) -> str:
    """Extract client IP from request, respecting X-Forwarded-For."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def rate_limit(
    max_requests: int = 60,
    window_seconds: int = 60,
    key_prefix: str = "rl",
):
    """FastAPI dependency for per-route rate limiting.

    Args:
        max_requests: Maximum requests allowed in the window.
        window_seconds: Sliding window size in seconds.
        key_prefix: Redis key prefix for this limiter.
    """

    async def _dependency(request: Request):
        key = f"{key_prefix}:{request.url.path}:{_get_client_ip(request)}"
        exceeded, _ = await check_rate_limit(key, max_requests, window_seconds)
        if exceeded:
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded. Max {max_requests} requests per {window_seconds}s.",
                headers={"Retry-After": str(window_seconds)},
            )

    return Depends(_dependency)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Global rate limiting middleware.

    Applies a generous global limit to all HTTP requests per IP.
    Use the `rate_limit()` dependency for stricter per-route limits.
    """

    def __init__(
        self,
        app,
        max_requests: int = 200,
        window_seconds: int = 60,
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    async def dispatch(self, request: Request, call_next):
        key = f"global_rl:{_get_client_ip(request)}"
        exceeded, _ = await check_rate_limit(key, self.max_requests, self.window_seconds)
        if exceeded:
            return JSONResponse(
                status_code=429,
                content={
                    "detail": f"Rate limit exceeded. Max {self.max_requests} requests per {self.window_seconds}s."
                },
                headers={"Retry-After": str(self.window_seconds)},
            )
        return await call_next(request)
