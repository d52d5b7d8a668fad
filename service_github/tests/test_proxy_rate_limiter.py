"""
Unit tests for the inbound fixed-window rate limiter.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_github.app.ratelimit.fixed_window import (
    FixedWindowRateLimiter,
    RateLimitMiddleware,
    get_client_ip,
)


class FakeClock:
    def __init__(self, start: float = 10_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class TestFixedWindowRateLimiter:
    """Test cases for the in-memory limiter."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def rate_limiter(self, clock):
        """Three requests per minute."""
        return FixedWindowRateLimiter("api", 3, 60, clock=clock)

    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self, rate_limiter):
        results = [await rate_limiter.check("127.0.0.1") for _ in range(3)]

        assert all(result["allowed"] for result in results)
        assert [result["remaining"] for result in results] == [2, 1, 0]
        assert results[0]["reset_in_seconds"] == 60

    @pytest.mark.asyncio
    async def test_blocks_over_limit(self, rate_limiter, clock):
        for _ in range(3):
            await rate_limiter.check("127.0.0.1")
        clock.now += 15

        result = await rate_limiter.check("127.0.0.1")

        assert result["allowed"] is False
        assert result["current_count"] == 4
        assert result["remaining"] == 0
        assert result["retry_after"] == 45

    @pytest.mark.asyncio
    async def test_window_resets(self, rate_limiter, clock):
        for _ in range(4):
            await rate_limiter.check("127.0.0.1")
        clock.now += 60

        result = await rate_limiter.check("127.0.0.1")

        assert result["allowed"] is True
        assert result["current_count"] == 1

    @pytest.mark.asyncio
    async def test_clients_are_independent(self, rate_limiter):
        for _ in range(4):
            await rate_limiter.check("10.0.0.1")

        result = await rate_limiter.check("10.0.0.2")

        assert result["allowed"] is True

    @pytest.mark.asyncio
    async def test_closed_windows_are_pruned(self, rate_limiter, clock):
        for index in range(100):
            await rate_limiter.check(f"198.51.100.{index}")
        assert len(rate_limiter._windows) == 100

        clock.now += 60
        await rate_limiter.check("203.0.113.9")

        assert list(rate_limiter._windows) == ["203.0.113.9"]

    @pytest.mark.asyncio
    async def test_open_windows_survive_pruning(self, rate_limiter, clock):
        await rate_limiter.check("10.0.0.1")
        clock.now += 30
        for _ in range(3):
            await rate_limiter.check("10.0.0.2")
        clock.now += 30

        result = await rate_limiter.check("10.0.0.2")

        assert "10.0.0.1" not in rate_limiter._windows
        assert result["allowed"] is False
        assert result["current_count"] == 4

    @pytest.mark.asyncio
    async def test_reset(self, rate_limiter):
        for _ in range(4):
            await rate_limiter.check("10.0.0.1")

        await rate_limiter.reset("10.0.0.1")

        assert (await rate_limiter.check("10.0.0.1"))["allowed"] is True


class TestRedisBackedLimiter:
    """Test cases for the Redis store."""

    @pytest.fixture
    def rate_limiter(self):
        return FixedWindowRateLimiter("strict", 2, 900, redis_url="redis://localhost:6379/0")

    @pytest.mark.asyncio
    async def test_first_request_sets_expiry(self, rate_limiter):
        with patch.object(rate_limiter, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_redis = AsyncMock()
            mock_get_redis.return_value = mock_redis
            mock_redis.incr.return_value = 1

            result = await rate_limiter.check("127.0.0.1")

            mock_redis.incr.assert_awaited_once_with("rate_limit:strict:127.0.0.1")
            mock_redis.expire.assert_awaited_once_with("rate_limit:strict:127.0.0.1", 900)
            assert result["allowed"] is True
            assert result["remaining"] == 1
            assert result["reset_in_seconds"] == 900

    @pytest.mark.asyncio
    async def test_over_limit_uses_key_ttl(self, rate_limiter):
        with patch.object(rate_limiter, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_redis = AsyncMock()
            mock_get_redis.return_value = mock_redis
            mock_redis.incr.return_value = 3
            mock_redis.ttl.return_value = 120

            result = await rate_limiter.check("127.0.0.1")

            mock_redis.expire.assert_not_awaited()
            assert result["allowed"] is False
            assert result["retry_after"] == 120

    @pytest.mark.asyncio
    async def test_redis_error_fails_open(self, rate_limiter):
        with patch.object(rate_limiter, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_redis = AsyncMock()
            mock_get_redis.return_value = mock_redis
            mock_redis.incr.side_effect = Exception("Redis connection error")

            result = await rate_limiter.check("127.0.0.1")

            assert result["allowed"] is True
            assert result["error"] == "Redis connection error"

    @pytest.mark.asyncio
    async def test_close(self, rate_limiter):
        mock_redis = AsyncMock()
        rate_limiter._redis = mock_redis

        await rate_limiter.close()

        mock_redis.aclose.assert_awaited_once()
        assert rate_limiter._redis is None


class TestRateLimitMiddleware:
    """Test cases for RateLimitMiddleware."""

    @pytest.fixture
    def mock_request(self):
        """Mock FastAPI Request object."""
        request = MagicMock()
        request.headers = {}
        request.client.host = "127.0.0.1"
        request.url.path = "/api/github/users"
        return request

    @pytest.mark.asyncio
    async def test_check_request_keys_by_ip(self, mock_request):
        limiter = MagicMock()
        limiter.name = "api"
        limiter.check = AsyncMock(return_value={"allowed": True, "current_count": 1, "limit": 100})
        middleware = RateLimitMiddleware(limiter)

        result = await middleware.check_request(mock_request)

        limiter.check.assert_awaited_once_with("127.0.0.1")
        assert result["allowed"] is True

    def test_get_client_ip_forwarded_for(self, mock_request):
        mock_request.headers = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}
        assert get_client_ip(mock_request) == "203.0.113.7"

    def test_get_client_ip_real_ip(self, mock_request):
        mock_request.headers = {"X-Real-IP": "198.51.100.4"}
        assert get_client_ip(mock_request) == "198.51.100.4"

    def test_get_client_ip_fallback(self, mock_request):
        mock_request.client = None
        assert get_client_ip(mock_request) == "unknown"
