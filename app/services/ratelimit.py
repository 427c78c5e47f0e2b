"""
Sliding-window rate limiting on Redis sorted sets.

The limiter is advisory: without a Redis client, or when Redis errors,
every request is allowed.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Dict, Tuple

import redis.asyncio as redis
from fastapi import Request

logger = logging.getLogger(__name__)

# limiter id → (max requests, window seconds)
LIMITS: Dict[str, Tuple[int, int]] = {
    "chat": (10, 3600),
    "chat_registered": (50, 3600),
    "signup": (3, 3600),
    "login": (5, 900),
    "admin": (30, 3600),
}


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int  # unix seconds

    def headers(self) -> Dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }
        if not self.allowed:
            headers["Retry-After"] = str(max(1, self.reset_at - int(time.time())))
        return headers


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


class RateLimiter:
    def __init__(self, redis_client=None, prefix: str = "ratelimit"):
        self._redis = redis_client
        self.prefix = prefix

    @property
    def enabled(self) -> bool:
        return self._redis is not None

    def _key(self, limiter_id: str, identifier: str) -> str:
        return f"{self.prefix}:{limiter_id}:{identifier}"

    async def check(self, limiter_id: str, identifier: str) -> RateLimitResult:
        if limiter_id not in LIMITS:
            raise ValueError(f"Unknown limiter: {limiter_id}")
        limit, window = LIMITS[limiter_id]
        now = time.time()
        open_result = RateLimitResult(True, limit, limit, int(now + window))

        if self._redis is None:
            return open_result

        key = self._key(limiter_id, identifier)
        try:
            pipe = self._redis.pipeline()
            pipe.zremrangebyscore(key, 0, now - window)
            pipe.zadd(key, {f"{now:.6f}:{uuid.uuid4().hex[:8]}": now})
            pipe.zcard(key)
            pipe.zrange(key, 0, 0, withscores=True)
            pipe.expire(key, window)
            _, _, count, oldest, _ = await pipe.execute()
        except Exception as e:
            logger.warning(f"⚠️ Rate limiter unavailable ({e.__class__.__name__}), allowing request")
            return open_result

        count = int(count)
        oldest_score = float(oldest[0][1]) if oldest else now
        allowed = count <= limit
        if not allowed:
            logger.warning(f"🚦 Rate limit hit: {limiter_id} ({count}/{limit})")
        return RateLimitResult(
            allowed=allowed,
            limit=limit,
            remaining=max(0, limit - count),
            reset_at=int(oldest_score + window),
        )

    async def aclose(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()


def create_redis_client(redis_url: str):
    """redis.asyncio client, or None when rate limiting is not configured"""
    if not redis_url:
        return None
    return redis.from_url(redis_url, decode_responses=True)
