"""
GitHub REST API client for the proxy.
"""

import time
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING
from urllib.parse import quote

import httpx

from shared.logging import get_logger
from service_github.app.domain.upstream_errors import (
    UpstreamResult,
    invalid_payload_error,
    normalize_response_error,
    normalize_transport_error,
)

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


GITHUB_MEDIA_TYPE = "application/vnd.github.v3+json"


class GitHubClient:
    """Single point of contact with the upstream GitHub API.

    Every call returns through :meth:`request`, which converts transport
    exceptions and error responses into normalized ``ProxyError`` values.
    The public fetch methods unwrap those results, so the only exceptions
    they raise come from ``shared.errors``.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        user_agent: str = "GitHub-Profile-Shop",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        metrics: Optional["MetricsCollector"] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.metrics = metrics
        self.clock = clock
        self.logger = get_logger("github.client")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        self.headers = {
            "Accept": GITHUB_MEDIA_TYPE,
            "User-Agent": user_agent,
        }
        # Authenticated requests get a higher upstream rate ceiling.
        if token:
            self.headers["Authorization"] = f"token {token}"

    @property
    def authenticated(self) -> bool:
        return "Authorization" in self.headers

    def _get_client(self) -> httpx.AsyncClient:
        """Get the shared HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close pooled connections."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def request(self, endpoint: str, path: str, params: Optional[Dict[str, Any]] = None) -> UpstreamResult:
        """Issue a GET and return the decoded payload or a normalized error."""
        client = self._get_client()
        start = time.perf_counter()

        try:
            response = await client.get(path, params=params)
        except httpx.HTTPError as exc:
            error = normalize_transport_error(exc)
            self._record(endpoint, "network_error", start, error.kind.value)
            self.logger.error(
                "GitHub request failed without response",
                endpoint=endpoint,
                path=path,
                error=error.message,
            )
            return UpstreamResult.failure(error)

        if response.is_success:
            try:
                payload = response.json()
            except ValueError:
                error = invalid_payload_error(response)
                self._record(endpoint, str(response.status_code), start, error.kind.value)
                self.logger.error("GitHub returned undecodable payload", endpoint=endpoint, path=path)
                return UpstreamResult.failure(error)

            self._record(endpoint, str(response.status_code), start)
            self.logger.debug("GitHub request succeeded", endpoint=endpoint, path=path)
            return UpstreamResult.success(payload)

        error = normalize_response_error(response, self.clock())
        self._record(endpoint, str(response.status_code), start, error.kind.value)
        self.logger.warning(
            "GitHub request returned error",
            endpoint=endpoint,
            path=path,
            status_code=response.status_code,
            kind=error.kind.value,
            error=error.error,
            remaining=response.headers.get("x-ratelimit-remaining"),
        )
        return UpstreamResult.failure(error)

    async def get_json(self, endpoint: str, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return (await self.request(endpoint, path, params)).unwrap()

    async def list_users(self, since: int = 0, per_page: int = 30) -> Any:
        """Fetch a page of users with ids greater than ``since``."""
        return await self.get_json("users", "/users", {"since": since, "per_page": per_page})

    async def get_user(self, username: str) -> Any:
        """Fetch a single user profile."""
        return await self.get_json("user", f"/users/{_segment(username)}")

    async def list_user_repos(self, username: str, sort: str = "updated", per_page: int = 100) -> Any:
        """Fetch a user's public repositories."""
        return await self.get_json(
            "user_repos",
            f"/users/{_segment(username)}/repos",
            {"sort": sort, "per_page": per_page},
        )

    async def list_user_gists(self, username: str, per_page: int = 10) -> Any:
        """Fetch a user's public gists."""
        return await self.get_json("user_gists", f"/users/{_segment(username)}/gists", {"per_page": per_page})

    async def list_followers(self, username: str, page: int = 1, per_page: int = 30) -> Any:
        """Fetch one page of a user's followers."""
        return await self.get_json(
            "user_followers",
            f"/users/{_segment(username)}/followers",
            {"per_page": per_page, "page": page},
        )

    async def list_following(self, username: str, page: int = 1, per_page: int = 30) -> Any:
        """Fetch one page of the users a user follows."""
        return await self.get_json(
            "user_following",
            f"/users/{_segment(username)}/following",
            {"per_page": per_page, "page": page},
        )

    async def search_users(self, query: str, page: int = 1, per_page: int = 30) -> Any:
        """Full-text user search."""
        return await self.get_json("search_users", "/search/users", {"q": query, "per_page": per_page, "page": page})

    async def search_repositories(self, query: str, sort: str = "stars", order: str = "desc", per_page: int = 30) -> Any:
        """Search repositories by criteria."""
        return await self.get_json(
            "search_repositories",
            "/search/repositories",
            {"q": query, "sort": sort, "order": order, "per_page": per_page},
        )

    def _record(self, endpoint: str, status: str, start: float, error_kind: Optional[str] = None) -> None:
        if not self.metrics:
            return
        self.metrics.increment_counter("upstream_requests_total", endpoint=endpoint, status=status)
        self.metrics.observe_histogram("upstream_request_duration_seconds", time.perf_counter() - start, endpoint=endpoint)
        if error_kind:
            self.metrics.increment_counter("upstream_errors_total", kind=error_kind)


def _segment(value: str) -> str:
    return quote(value, safe="")
