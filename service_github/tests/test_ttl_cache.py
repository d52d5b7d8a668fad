"""
Unit tests for the proxy TTL cache.
"""

import asyncio

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_github.app.caching.ttl_cache import TTLCache
from shared.metrics import MetricsCollector


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestTTLCache:
    """Test cases for TTLCache."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def cache(self, clock):
        """Create TTLCache instance with a 600s TTL."""
        return TTLCache(600, 120, clock=clock)

    def test_get_missing_key(self, cache):
        assert cache.get("users:0:30") is None
        assert cache.stats["misses"] == 1

    def test_set_and_get(self, cache):
        cache.set("user:octocat", {"login": "octocat"})

        assert cache.get("user:octocat") == {"login": "octocat"}
        assert cache.stats["hits"] == 1
        assert cache.stats["writes"] == 1

    def test_entry_live_just_before_ttl(self, cache, clock):
        cache.set("user:octocat", {"login": "octocat"})
        clock.advance(599.9)

        assert cache.get("user:octocat") == {"login": "octocat"}

    def test_entry_expires_at_ttl(self, cache, clock):
        """A read at exactly the expiry instant is a miss."""
        cache.set("user:octocat", {"login": "octocat"})
        clock.advance(600)

        assert cache.get("user:octocat") is None
        assert "user:octocat" not in cache
        assert len(cache) == 0
        assert cache.stats["evictions"] == 1

    def test_expired_entry_counts_as_miss_without_sweeper(self, cache, clock):
        cache.set("repos:octocat:updated", [1, 2, 3])
        clock.advance(10_000)

        assert cache.sweeper_running is False
        assert cache.get("repos:octocat:updated") is None
        assert cache.stats["misses"] == 1

    def test_custom_ttl(self, cache, clock):
        cache.set("trending::weekly", {"items": []}, ttl=30)
        clock.advance(31)

        assert cache.get("trending::weekly") is None

    def test_last_write_wins(self, cache, clock):
        cache.set("user:octocat", {"version": 1})
        clock.advance(500)
        cache.set("user:octocat", {"version": 2})
        clock.advance(500)

        # Second write restarted the TTL.
        assert cache.get("user:octocat") == {"version": 2}

    def test_delete(self, cache):
        cache.set("user:octocat", {"login": "octocat"})

        assert cache.delete("user:octocat") is True
        assert cache.delete("user:octocat") is False
        assert cache.get("user:octocat") is None

    def test_flush(self, cache):
        cache.set("user:a", 1)
        cache.set("user:b", 2)
        cache.set("users:0:30", [])

        assert cache.flush() == 3
        assert len(cache) == 0
        assert cache.keys() == []

    def test_sweep_purges_only_expired(self, cache, clock):
        cache.set("user:old", 1, ttl=60)
        cache.set("user:new", 2, ttl=600)
        clock.advance(120)

        assert cache.sweep() == 1
        assert len(cache) == 1
        assert cache.keys() == ["user:new"]

    def test_get_stats(self, cache):
        cache.set("user:octocat", 1)
        cache.get("user:octocat")
        cache.get("user:missing")

        stats = cache.get_stats()

        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate_percent"] == 50.0
        assert stats["entries"] == 1
        assert stats["keys"] == ["user:octocat"]
        assert stats["ttl_seconds"] == 600
        assert stats["check_period_seconds"] == 120
        assert stats["sweeper_running"] is False

    def test_cache_entries_gauge(self, clock):
        metrics = MetricsCollector("github-proxy")
        cache = TTLCache(600, 120, clock=clock, metrics=metrics)

        cache.set("user:a", 1)
        cache.set("user:b", 2)
        assert metrics.registry.get_sample_value("cache_entries") == 2

        cache.flush()
        assert metrics.registry.get_sample_value("cache_entries") == 0

    @pytest.mark.asyncio
    async def test_sweeper_lifecycle(self, clock):
        cache = TTLCache(600, 0.01, clock=clock)
        cache.set("user:octocat", 1, ttl=5)
        clock.advance(10)

        cache.start_sweeper()
        assert cache.sweeper_running is True

        for _ in range(50):
            if len(cache) == 0:
                break
            await asyncio.sleep(0.01)

        assert len(cache) == 0

        await cache.stop_sweeper()
        assert cache.sweeper_running is False

    @pytest.mark.asyncio
    async def test_sweeper_disabled_with_zero_period(self, clock):
        cache = TTLCache(600, 0, clock=clock)

        cache.start_sweeper()

        assert cache.sweeper_running is False
        await cache.stop_sweeper()

    @pytest.mark.asyncio
    async def test_start_sweeper_is_idempotent(self, cache):
        cache.start_sweeper()
        first = cache._sweeper
        cache.start_sweeper()

        assert cache._sweeper is first
        await cache.stop_sweeper()
