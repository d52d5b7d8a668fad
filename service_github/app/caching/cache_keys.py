"""
Cache key construction.

Every cacheable operation derives its key here, after applying the same
defaults the gateway applies, so a request that spells out a default and one
that omits it land on the same entry.
"""

from typing import Any, Optional


DEFAULT_SINCE = 0
DEFAULT_PER_PAGE = 30
MAX_PER_PAGE = 100
DEFAULT_REPO_SORT = "updated"
DEFAULT_TRENDING_WINDOW = "weekly"


def normalize_since(since: Optional[Any]) -> int:
    """Users cursor: integer, default 0, never negative."""
    value = _as_int(since, DEFAULT_SINCE)
    return max(0, value)


def normalize_per_page(per_page: Optional[Any]) -> int:
    """Page size: integer, default 30, clamped to 1..100."""
    value = _as_int(per_page, DEFAULT_PER_PAGE)
    if value <= 0:
        value = DEFAULT_PER_PAGE
    return min(value, MAX_PER_PAGE)


def normalize_page(page: Optional[Any]) -> int:
    """1-based page number."""
    value = _as_int(page, 1)
    return value if value >= 1 else 1


def normalize_username(username: str) -> str:
    """GitHub logins are case-insensitive."""
    return username.strip().lower()


def normalize_language(language: Optional[str]) -> str:
    return (language or "").strip().lower()


def _as_int(value: Optional[Any], default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class CacheKeys:
    """
    Centralized cache key definitions.

    Naming convention: {operation}:{param}:{param}

    Examples:
        - users:0:30 -> first page of users, 30 per page
        - user:octocat -> enriched profile
        - repos:octocat:updated -> repositories sorted by update time
        - trending:python:weekly -> trending repositories
    """

    @staticmethod
    def users(since: Optional[Any] = None, per_page: Optional[Any] = None) -> str:
        """Cache key for a page of enriched users."""
        return f"users:{normalize_since(since)}:{normalize_per_page(per_page)}"

    @staticmethod
    def user(username: str) -> str:
        """Cache key for an enriched profile."""
        return f"user:{normalize_username(username)}"

    @staticmethod
    def repos(username: str, sort: Optional[str] = None) -> str:
        """Cache key for a user's repositories in a given order."""
        return f"repos:{normalize_username(username)}:{sort or DEFAULT_REPO_SORT}"

    @staticmethod
    def trending(language: Optional[str] = None, since: Optional[str] = None) -> str:
        """Cache key for trending repositories."""
        return f"trending:{normalize_language(language)}:{since or DEFAULT_TRENDING_WINDOW}"
