"""
Fixed-window rate limiter for inbound proxy traffic.
"""

import math
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

import redis.asyncio as redis
from fastapi import Request

from shared.logging import get_logger


class FixedWindowRateLimiter:
    """Per-client request budget over a fixed time window.

    Counters live in process memory unless ``redis_url`` is given, in which
    case they are shared through Redis (INCR + EXPIRE per window). Redis
    failures fail open.
    """

    def __init__(
        self,
        name: str,
        limit: int,
        window_seconds: int,
        *,
        redis_url: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.name = name
        self.limit = limit
        self.window_seconds = window_seconds
        self.redis_url = redis_url
        self.clock = clock
        self.logger = get_logger(f"github.rate_limiter.{name}")

        self._redis: Optional[redis.Redis] = None
        self._windows: Dict[str, Tuple[float, int]] = {}  # client_id -> (window_start, count)
        self._last_prune = clock()
        self._lock = threading.Lock()

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)
        return self._redis

    def _make_key(self, client_id: str) -> str:
        """Generate rate limit key."""
        return f"rate_limit:{self.name}:{client_id}"

    async def check(self, client_id: str) -> Dict[str, Any]:
        """Count one request for ``client_id`` and report whether it is allowed."""
        if self.redis_url:
            return await self._check_redis(client_id)
        return self._check_memory(client_id)

    def _check_memory(self, client_id: str) -> Dict[str, Any]:
        now = self.clock()
        with self._lock:
            self._prune_expired(now)
            window_start, count = self._windows.get(client_id, (now, 0))
            if now - window_start >= self.window_seconds:
                window_start, count = now, 0
            count += 1
            self._windows[client_id] = (window_start, count)

        reset_in = max(0, math.ceil(window_start + self.window_seconds - now))
        return self._result(count, reset_in)

    def _prune_expired(self, now: float) -> None:
        """Drop closed windows, at most once per window length. Caller holds the lock."""
        if now - self._last_prune < self.window_seconds:
            return
        self._last_prune = now
        expired = [
            client_id for client_id, (window_start, _) in self._windows.items()
            if now - window_start >= self.window_seconds
        ]
        for client_id in expired:
            del self._windows[client_id]
        if expired:
            self.logger.debug("Pruned rate limit windows", count=len(expired))

    async def _check_redis(self, client_id: str) -> Dict[str, Any]:
        key = self._make_key(client_id)
        try:
            redis_client = await self._get_redis()
            count = int(await redis_client.incr(key))
            if count == 1:
                await redis_client.expire(key, self.window_seconds)
                ttl = self.window_seconds
            else:
                ttl = await redis_client.ttl(key)
                if ttl is None or ttl < 0:
                    await redis_client.expire(key, self.window_seconds)
                    ttl = self.window_seconds
        except Exception as e:
            self.logger.error("Rate limit check error", error=str(e))
            return {
                "allowed": True,
                "current_count": 0,
                "limit": self.limit,
                "remaining": self.limit,
                "reset_in_seconds": self.window_seconds,
                "error": str(e)
            }

        return self._result(count, int(ttl))

    def _result(self, count: int, reset_in: int) -> Dict[str, Any]:
        allowed = count <= self.limit
        result = {
            "allowed": allowed,
            "current_count": count,
            "limit": self.limit,
            "remaining": max(0, self.limit - count),
            "reset_in_seconds": reset_in,
        }
        if not allowed:
            result["retry_after"] = reset_in
        return result

    async def reset(self, client_id: Optional[str] = None) -> None:
        """Forget counters for one client or for everyone."""
        if self.redis_url:
            redis_client = await self._get_redis()
            if client_id:
                await redis_client.delete(self._make_key(client_id))
            else:
                async for key in redis_client.scan_iter(match=f"rate_limit:{self.name}:*"):
                    await redis_client.delete(key)
            return

        with self._lock:
            if client_id:
                self._windows.pop(client_id, None)
            else:
                self._windows.clear()

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


class RateLimitMiddleware:
    """Applies a limiter to a request, keyed by caller IP."""

    def __init__(self, rate_limiter: FixedWindowRateLimiter):
        self.rate_limiter = rate_limiter
        self.logger = get_logger("github.rate_limit_middleware")

    async def check_request(self, request: Request) -> Dict[str, Any]:
        """Check rate limit for request."""
        client_id = get_client_ip(request)
        result = await self.rate_limiter.check(client_id)
        if not result["allowed"]:
            self.logger.warning(
                "Rate limit exceeded",
                limiter=self.rate_limiter.name,
                client_id=client_id,
                path=request.url.path,
                current_count=result["current_count"],
                limit=result["limit"],
            )
        return result


def get_client_ip(request: Request) -> str:
    """Extract the caller IP from standard headers."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    if request.client:
        return request.client.host
    return "unknown"
