"""
GitHub proxy core: cache-or-fetch, enrichment fan-out and admin clearing.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, TYPE_CHECKING

from shared.errors import ValidationError
from shared.logging import get_logger
from service_github.app.caching.cache_keys import (
    CacheKeys,
    DEFAULT_REPO_SORT,
    DEFAULT_TRENDING_WINDOW,
    normalize_language,
    normalize_page,
    normalize_per_page,
    normalize_since,
)
from service_github.app.domain.fanout import gather_fail_fast
from service_github.app.domain.upstream_errors import invalid_payload_error

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from service_github.app.adapters.github_client import GitHubClient
    from service_github.app.caching.ttl_cache import TTLCache
    from shared.metrics import MetricsCollector


ENRICHED_USERS_LIMIT = 15
PROFILE_REPOS_LIMIT = 10
USER_REPOS_LIMIT = 100
GISTS_LIMIT = 10
PAGE_SIZE = 30

REPO_SORTS = ("created", "updated", "pushed", "full_name")
TRENDING_WINDOWS = {
    "daily": 1,
    "weekly": 7,
    "monthly": 30,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_trending_query(language: str, since: str, now: datetime) -> str:
    """Search query for repositories created inside the trending window."""
    lower_bound = (now - timedelta(days=TRENDING_WINDOWS[since])).date()
    query = f"created:>{lower_bound.isoformat()}"
    if language:
        query += f" language:{language}"
    return query


class GitHubService:
    """Proxy operations over the GitHub API.

    Cacheable reads follow one protocol: build the key from normalized
    parameters, return a live entry without touching upstream, otherwise
    fetch, store under the configured TTL and return. Failures are never
    stored, so the next identical request goes upstream again.
    """

    def __init__(
        self,
        client: "GitHubClient",
        cache: "TTLCache",
        *,
        ttl: Optional[int] = None,
        metrics: Optional["MetricsCollector"] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.client = client
        self.cache = cache
        self.ttl = ttl
        self.metrics = metrics
        self.now = now
        self.logger = get_logger("github.service")

    async def _cached(self, operation: str, key: str, fetch: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value for ``key`` or fetch and store it."""
        cached = self.cache.get(key)
        if cached is not None:
            self._record_cache(operation, hit=True)
            self.logger.debug("Cache hit", operation=operation, key=key)
            return cached

        self._record_cache(operation, hit=False)
        self.logger.debug("Cache miss", operation=operation, key=key)

        value = await fetch()
        self.cache.set(key, value, ttl=self.ttl)
        return value

    async def fetch_users(self, since: Optional[Any] = None, per_page: Optional[Any] = None) -> List[Dict[str, Any]]:
        """Page of users, the first 15 enriched with profile details.

        Enrichment runs concurrently and fails as a unit: if any detail
        fetch fails, the whole page fails and nothing is cached.
        """
        since = normalize_since(since)
        per_page = normalize_per_page(per_page)

        async def _fetch() -> List[Dict[str, Any]]:
            users = await self.client.list_users(since=since, per_page=per_page)
            logins = self._enrichment_logins(users)
            enriched = await gather_fail_fast(*(self.fetch_user_details(login) for login in logins))
            self.logger.info("Enriched users page", since=since, per_page=per_page, count=len(enriched))
            return enriched

        return await self._cached("users", CacheKeys.users(since, per_page), _fetch)

    async def fetch_user_details(self, username: str) -> Dict[str, Any]:
        """Profile merged with its most recently updated repositories."""
        username = self._require_username(username)

        async def _fetch() -> Dict[str, Any]:
            profile, repositories = await gather_fail_fast(
                self.client.get_user(username),
                self.client.list_user_repos(username, sort="updated", per_page=PROFILE_REPOS_LIMIT),
            )
            if not isinstance(profile, dict):
                self.logger.error("Unexpected profile payload", username=username, payload_type=type(profile).__name__)
                raise invalid_payload_error()
            return {
                **profile,
                "repositories": repositories,
                "category": profile.get("type"),
            }

        return await self._cached("user", CacheKeys.user(username), _fetch)

    async def search_users(self, query: Optional[str], page: Optional[Any] = None) -> Dict[str, Any]:
        """Live user search; never cached."""
        if query is None or not query.strip():
            raise ValidationError('Query parameter "q" is required')
        return await self.client.search_users(query, page=normalize_page(page), per_page=PAGE_SIZE)

    async def fetch_user_repos(self, username: str, sort: Optional[str] = None) -> List[Dict[str, Any]]:
        """Up to 100 repositories in the requested order."""
        username = self._require_username(username)
        sort = sort or DEFAULT_REPO_SORT
        if sort not in REPO_SORTS:
            raise ValidationError(
                f"Invalid sort '{sort}'",
                details={"allowed": list(REPO_SORTS)},
            )

        async def _fetch() -> List[Dict[str, Any]]:
            return await self.client.list_user_repos(username, sort=sort, per_page=USER_REPOS_LIMIT)

        return await self._cached("repos", CacheKeys.repos(username, sort), _fetch)

    async def fetch_user_gists(self, username: str) -> List[Dict[str, Any]]:
        username = self._require_username(username)
        return await self.client.list_user_gists(username, per_page=GISTS_LIMIT)

    async def fetch_user_followers(self, username: str, page: Optional[Any] = None) -> List[Dict[str, Any]]:
        username = self._require_username(username)
        return await self.client.list_followers(username, page=normalize_page(page), per_page=PAGE_SIZE)

    async def fetch_user_following(self, username: str, page: Optional[Any] = None) -> List[Dict[str, Any]]:
        username = self._require_username(username)
        return await self.client.list_following(username, page=normalize_page(page), per_page=PAGE_SIZE)

    async def fetch_trending_repos(self, language: Optional[str] = None, since: Optional[str] = None) -> Dict[str, Any]:
        """Most-starred repositories created within the time window."""
        language = normalize_language(language)
        since = since or DEFAULT_TRENDING_WINDOW
        if since not in TRENDING_WINDOWS:
            raise ValidationError(
                f"Invalid since '{since}'",
                details={"allowed": list(TRENDING_WINDOWS)},
            )

        async def _fetch() -> Dict[str, Any]:
            query = build_trending_query(language, since, self.now())
            return await self.client.search_repositories(query, sort="stars", order="desc", per_page=PAGE_SIZE)

        return await self._cached("trending", CacheKeys.trending(language, since), _fetch)

    def clear_cache(self, key: Optional[str] = None) -> int:
        """Drop one key, or everything when ``key`` is empty."""
        if key:
            removed = int(self.cache.delete(key))
            self.logger.info("Cleared cache key", key=key, removed=bool(removed))
            return removed

        removed = self.cache.flush()
        self.logger.info("Flushed cache", removed=removed)
        return removed

    def cache_stats(self) -> Dict[str, Any]:
        return self.cache.get_stats()

    def _enrichment_logins(self, users: Any) -> List[str]:
        """Logins of the users to enrich; the page must be a list of user objects."""
        if not isinstance(users, list):
            self.logger.error("Unexpected users payload", payload_type=type(users).__name__)
            raise invalid_payload_error()

        logins = []
        for user in users[:ENRICHED_USERS_LIMIT]:
            login = user.get("login") if isinstance(user, dict) else None
            if not isinstance(login, str) or not login:
                self.logger.error("Users payload entry without login", entry=repr(user)[:200])
                raise invalid_payload_error()
            logins.append(login)
        return logins

    @staticmethod
    def _require_username(username: Optional[str]) -> str:
        if username is None or not username.strip():
            raise ValidationError("Username is required")
        return username.strip()

    def _record_cache(self, operation: str, hit: bool) -> None:
        if self.metrics:
            metric = "cache_hits_total" if hit else "cache_misses_total"
            self.metrics.increment_counter(metric, operation=operation)
