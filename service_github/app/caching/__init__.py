"""
Proxy caching package.

Provides the per-process TTL store used to absorb upstream rate limits and
the key builder that keeps logically identical requests on one entry.
Entries are written whole; invalidation is by TTL, sweep, or explicit
admin clear.
"""

from .cache_keys import CacheKeys
from .ttl_cache import CacheEntry, TTLCache

__all__ = ["CacheEntry", "CacheKeys", "TTLCache"]
