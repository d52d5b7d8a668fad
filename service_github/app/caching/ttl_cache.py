"""
In-process TTL cache for upstream GitHub payloads.
"""

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_TTL_SECONDS = 600
DEFAULT_CHECK_PERIOD_SECONDS = 120


@dataclass
class CacheEntry:
    """A single cached payload."""

    key: str
    value: Any
    inserted_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class TTLCache:
    """Key/value store with per-entry expiry and a periodic sweeper.

    A read at or after an entry's expiry behaves exactly like a miss. The
    sweeper only bounds memory; correctness never depends on it having run.
    """

    def __init__(
        self,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        check_period: float = DEFAULT_CHECK_PERIOD_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.default_ttl = default_ttl
        self.check_period = check_period
        self.clock = clock
        self.metrics = metrics
        self.logger = get_logger("github.cache")

        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._sweeper: Optional[asyncio.Task] = None
        self.stats = {
            "hits": 0,
            "misses": 0,
            "writes": 0,
            "evictions": 0,
        }

    def get(self, key: str) -> Optional[Any]:
        """Return the live value for ``key`` or ``None``."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats["misses"] += 1
                return None

            if entry.is_expired(self.clock()):
                del self._entries[key]
                self.stats["evictions"] += 1
                self.stats["misses"] += 1
                self._update_gauge()
                return None

            self.stats["hits"] += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> CacheEntry:
        """Store ``value`` under ``key``, replacing any existing entry."""
        ttl = self.default_ttl if ttl is None else ttl
        now = self.clock()
        entry = CacheEntry(key=key, value=value, inserted_at=now, expires_at=now + ttl)

        with self._lock:
            self._entries[key] = entry
            self.stats["writes"] += 1
            self._update_gauge()

        self.logger.debug("Cached value", key=key, ttl=ttl)
        return entry

    def delete(self, key: str) -> bool:
        """Remove ``key``; returns whether it was present."""
        with self._lock:
            removed = self._entries.pop(key, None) is not None
            if removed:
                self.stats["evictions"] += 1
                self._update_gauge()
        return removed

    def flush(self) -> int:
        """Remove every entry; returns how many were dropped."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self.stats["evictions"] += count
            self._update_gauge()
        return count

    def sweep(self) -> int:
        """Purge expired entries."""
        now = self.clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self.stats["evictions"] += len(expired)
            self._update_gauge()

        if expired:
            self.logger.info("Purged expired cache entries", count=len(expired))
        return len(expired)

    def keys(self) -> List[str]:
        """Keys of entries that have not expired yet."""
        now = self.clock()
        with self._lock:
            return [key for key, entry in self._entries.items() if not entry.is_expired(now)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self.clock())

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            total = self.stats["hits"] + self.stats["misses"]
            hit_rate = (self.stats["hits"] / total * 100) if total > 0 else 0
            return {
                **self.stats,
                "hit_rate_percent": round(hit_rate, 1),
                "entries": len(self._entries),
                "keys": sorted(self._entries),
                "ttl_seconds": self.default_ttl,
                "check_period_seconds": self.check_period,
                "sweeper_running": self.sweeper_running,
            }

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start_sweeper(self) -> None:
        """Start the periodic sweep task on the running event loop."""
        if self.sweeper_running:
            return
        if self.check_period <= 0:
            self.logger.info("Cache sweeper disabled", check_period=self.check_period)
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())
        self.logger.info("Cache sweeper started", check_period=self.check_period)

    async def stop_sweeper(self) -> None:
        """Cancel the sweep task and wait for it to finish."""
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.logger.info("Cache sweeper stopped")

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.check_period)
            try:
                self.sweep()
            except Exception as exc:  # pragma: no cover - keep sweeping on unexpected errors
                self.logger.error("Cache sweep failed", error=str(exc))

    def _update_gauge(self) -> None:
        if self.metrics:
            self.metrics.set_gauge("cache_entries", len(self._entries))
