"""
GitHub profile proxy service.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import httpx
from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig
from service_github.app.adapters.github_client import GitHubClient
from service_github.app.caching.ttl_cache import TTLCache
from service_github.app.domain.github_service import GitHubService
from service_github.app.ratelimit.fixed_window import FixedWindowRateLimiter, RateLimitMiddleware


API_PREFIX = "/api/github"


class InboundRateLimitExceeded(Exception):
    """Raised by route dependencies when a caller exhausts a limiter."""

    def __init__(self, limiter: str, result: Dict[str, Any], message: str, retry_after_text: str):
        self.limiter = limiter
        self.result = result
        self.message = message
        self.retry_after_text = retry_after_text
        super().__init__(message)


class GitHubProxyService(BaseService):
    """GitHub proxy service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cache_clock: Optional[Callable[[], float]] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__("github-proxy", config)

        # One cache per process, handed to everything that needs it.
        cache_kwargs = {"clock": cache_clock} if cache_clock else {}
        self.cache = TTLCache(
            self.config.cache_ttl_seconds,
            self.config.cache_check_period_seconds,
            metrics=self.metrics,
            **cache_kwargs,
        )
        self.github_client = GitHubClient(
            self.config.github_api_url,
            self.config.github_token,
            user_agent=self.config.user_agent,
            timeout=self.config.upstream_timeout_seconds,
            transport=transport,
            metrics=self.metrics,
        )
        service_kwargs = {"now": now} if now else {}
        self.github_service = GitHubService(
            self.github_client,
            self.cache,
            ttl=self.config.cache_ttl_seconds,
            metrics=self.metrics,
            **service_kwargs,
        )

        self.api_limiter = FixedWindowRateLimiter(
            "api",
            self.config.rate_limit_max,
            self.config.rate_limit_window_seconds,
            redis_url=self.config.rate_limit_redis_url,
        )
        self.strict_limiter = FixedWindowRateLimiter(
            "strict",
            self.config.strict_rate_limit_max,
            self.config.rate_limit_window_seconds,
            redis_url=self.config.rate_limit_redis_url,
        )
        self.api_rate_limit = RateLimitMiddleware(self.api_limiter)
        self.strict_rate_limit = RateLimitMiddleware(self.strict_limiter)

        @self.app.exception_handler(InboundRateLimitExceeded)
        async def _rate_limited(request: Request, exc: InboundRateLimitExceeded):
            self.metrics.increment_counter("rate_limit_hits_total", limiter=exc.limiter)
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "error": exc.message,
                    "retryAfter": exc.retry_after_text,
                },
                headers={"Retry-After": str(exc.result.get("retry_after", exc.result["reset_in_seconds"]))},
            )

        self._setup_proxy_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.github_proxy_service = self

    async def on_startup(self) -> None:
        if self.github_client.authenticated:
            self.logger.info("GitHub token loaded")
        else:
            self.logger.warning("GitHub token not found; upstream rate limits will be lower")
        self.cache.start_sweeper()

    async def on_shutdown(self) -> None:
        await self.cache.stop_sweeper()
        await self.github_client.close()
        await self.api_limiter.close()
        await self.strict_limiter.close()

    async def _enforce_api_limit(self, request: Request, response: Response) -> Dict[str, Any]:
        """General per-IP budget for every proxy route."""
        result = await self.api_rate_limit.check_request(request)
        if not result["allowed"]:
            raise InboundRateLimitExceeded(
                "api",
                result,
                "Too many requests from this IP, please try again later.",
                self._window_text(),
            )
        response.headers["RateLimit-Limit"] = str(result["limit"])
        response.headers["RateLimit-Remaining"] = str(result["remaining"])
        response.headers["RateLimit-Reset"] = str(result["reset_in_seconds"])
        return result

    async def _enforce_strict_limit(self, request: Request) -> Dict[str, Any]:
        """Tighter budget for trending and cache administration."""
        result = await self.strict_rate_limit.check_request(request)
        if not result["allowed"]:
            raise InboundRateLimitExceeded(
                "strict",
                result,
                "Too many requests for this resource, please try again later.",
                self._window_text(),
            )
        return result

    def _window_text(self) -> str:
        minutes = max(1, self.config.rate_limit_window_seconds // 60)
        return f"{minutes} minutes"

    def _format_iso(self, value: datetime) -> str:
        """Format datetime values as ISO-8601 strings with millisecond precision."""
        return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")

    async def _check_dependencies(self) -> Dict[str, str]:
        return {
            "cache": "ok",
            "cache_sweeper": "running" if self.cache.sweeper_running else "stopped",
            "github_token": "configured" if self.github_client.authenticated else "missing",
        }

    def _setup_proxy_routes(self):
        """Set up GitHub proxy routes."""
        service = self.github_service
        router = APIRouter(prefix=API_PREFIX, dependencies=[Depends(self._enforce_api_limit)])
        strict = [Depends(self._enforce_strict_limit)]

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": self.service_name,
                "message": "GitHub Profile Proxy",
                "version": "1.0.0"
            }

        @self.app.get("/api/health")
        async def api_health():
            """Liveness check in the public API namespace."""
            return {"status": "OK", "timestamp": self._format_iso(datetime.now(timezone.utc))}

        @router.get("/users")
        async def get_users(since: Optional[str] = Query(None), per_page: Optional[str] = Query(None)):
            """Page of users enriched with profile details."""
            users = await service.fetch_users(since, per_page)
            return {"success": True, "data": users}

        @router.get("/user/{username}")
        async def get_user(username: str):
            """Single enriched profile."""
            user = await service.fetch_user_details(username)
            return {"success": True, "data": user}

        @router.get("/search")
        async def search_users(q: Optional[str] = Query(None), page: Optional[str] = Query(None)):
            """Live user search."""
            results = await service.search_users(q, page)
            return {"success": True, "data": results}

        @router.get("/user/{username}/repos")
        async def get_user_repos(username: str, sort: Optional[str] = Query(None)):
            """A user's repositories."""
            repos = await service.fetch_user_repos(username, sort)
            return {"success": True, "data": repos}

        @router.get("/user/{username}/gists")
        async def get_user_gists(username: str):
            """A user's gists."""
            gists = await service.fetch_user_gists(username)
            return {"success": True, "data": gists}

        @router.get("/user/{username}/followers")
        async def get_user_followers(username: str, page: Optional[str] = Query(None)):
            """A user's followers."""
            followers = await service.fetch_user_followers(username, page)
            return {"success": True, "data": followers}

        @router.get("/user/{username}/following")
        async def get_user_following(username: str, page: Optional[str] = Query(None)):
            """Users this user follows."""
            following = await service.fetch_user_following(username, page)
            return {"success": True, "data": following}

        @router.get("/trending", dependencies=strict)
        async def get_trending(language: Optional[str] = Query(None), since: Optional[str] = Query(None)):
            """Trending repositories."""
            trending = await service.fetch_trending_repos(language, since)
            return {"success": True, "data": trending}

        @router.delete("/cache", dependencies=strict)
        async def clear_cache(key: Optional[str] = Query(None)):
            """Clear one cache key or the whole cache (admin)."""
            try:
                service.clear_cache(key)
            except Exception as e:
                self.logger.error("Cache clear error", key=key, error=str(e))
                return JSONResponse(
                    status_code=500,
                    content={"success": False, "error": "Failed to clear cache"},
                )
            return {
                "success": True,
                "message": f"Cache cleared for key: {key}" if key else "All cache cleared",
            }

        @router.get("/cache/stats", dependencies=strict)
        async def get_cache_stats():
            """Cache statistics (admin)."""
            return {"success": True, "data": service.cache_stats()}

        self.app.include_router(router)


def create_app(config: Optional[ServiceConfig] = None, **kwargs):
    """Create FastAPI application."""
    service = GitHubProxyService(config, **kwargs)
    return service.app


if __name__ == "__main__":
    service = GitHubProxyService()
    service.run()
