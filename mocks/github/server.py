"""
Mock GitHub REST API server for local development and integration tests.
"""

import time
from typing import Any, Dict, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
import sys
import os

# Add shared directory to path
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.logging import get_logger
from shared.test_helpers import GitHubDataFactory


class MockGitHubServer:
    """Mock GitHub API implementation.

    Serves deterministic payloads from ``GitHubDataFactory`` and keeps an
    unauthenticated-style request quota. Once the quota is spent every data
    route answers 403 with ``X-RateLimit-Remaining: 0`` until the quota is
    reset through ``POST /_mock/quota``.
    """

    def __init__(self, port: int = 8090, quota: int = 60, window_seconds: int = 3600):
        self.port = port
        self.logger = get_logger("mock.github")
        self.app = FastAPI(title="Mock GitHub API", version="1.0.0")
        self.factory = GitHubDataFactory()

        self.quota = quota
        self.window_seconds = window_seconds
        self.used = 0
        self.reset_epoch = int(time.time()) + window_seconds
        self.missing_users = {"ghost-user"}

        self._setup_routes()
        self.app.state.mock_github = self

    def _setup_routes(self):
        """Set up mock GitHub routes."""

        @self.app.middleware("http")
        async def enforce_quota(request: Request, call_next):
            if request.url.path.startswith("/_mock"):
                return await call_next(request)

            self.used += 1
            remaining = max(0, self.quota - self.used)
            headers = self.factory.rate_limit_headers(self.reset_epoch, remaining, self.quota)

            if self.used > self.quota:
                self.logger.warning("Mock quota exhausted", path=request.url.path, used=self.used)
                return JSONResponse(
                    status_code=403,
                    content={
                        "message": "API rate limit exceeded for 127.0.0.1.",
                        "documentation_url": "https://docs.github.com/rest/overview/resources-in-the-rest-api#rate-limiting",
                    },
                    headers=headers,
                )

            response = await call_next(request)
            response.headers.update(headers)
            return response

        @self.app.get("/")
        async def root():
            return {
                "current_user_url": "https://api.github.com/user",
                "user_url": "https://api.github.com/users/{user}",
                "user_search_url": "https://api.github.com/search/users?q={query}{&page,per_page,sort,order}",
            }

        @self.app.get("/users")
        async def list_users(since: int = Query(0), per_page: int = Query(30)):
            return self.factory.create_users(since, min(per_page, 100))

        @self.app.get("/users/{login}")
        async def get_user(login: str):
            if login in self.missing_users:
                return self._not_found()
            return self.factory.create_profile(login)

        @self.app.get("/users/{login}/repos")
        async def list_repos(login: str, sort: str = Query("full_name"), per_page: int = Query(30)):
            if login in self.missing_users:
                return self._not_found()
            repos = self.factory.create_repos(login, min(per_page, 12))
            if sort == "updated":
                repos.sort(key=lambda repo: repo["updated_at"], reverse=True)
            elif sort == "full_name":
                repos.sort(key=lambda repo: repo["full_name"])
            return repos

        @self.app.get("/users/{login}/gists")
        async def list_gists(login: str, per_page: int = Query(30)):
            if login in self.missing_users:
                return self._not_found()
            return self.factory.create_gists(login, min(per_page, 4))

        @self.app.get("/users/{login}/followers")
        async def list_followers(login: str, page: int = Query(1), per_page: int = Query(30)):
            if login in self.missing_users:
                return self._not_found()
            return self.factory.create_users((page - 1) * per_page, min(per_page, 5))

        @self.app.get("/users/{login}/following")
        async def list_following(login: str, page: int = Query(1), per_page: int = Query(30)):
            if login in self.missing_users:
                return self._not_found()
            return self.factory.create_users(1000 + (page - 1) * per_page, min(per_page, 5))

        @self.app.get("/search/users")
        async def search_users(q: Optional[str] = Query(None), page: int = Query(1), per_page: int = Query(30)):
            if not q:
                return JSONResponse(
                    status_code=422,
                    content={"message": "Validation Failed", "errors": [{"field": "q", "code": "missing"}]},
                )
            items = self.factory.create_users((page - 1) * per_page, min(per_page, 5))
            return self.factory.create_search_page(items, total_count=120)

        @self.app.get("/search/repositories")
        async def search_repositories(
            q: Optional[str] = Query(None),
            sort: str = Query("stars"),
            order: str = Query("desc"),
            per_page: int = Query(30),
        ):
            items = self.factory.create_repos("trending", min(per_page, 5))
            if sort == "stars":
                items.sort(key=lambda repo: repo["stargazers_count"], reverse=(order == "desc"))
            return self.factory.create_search_page(items, total_count=500)

        @self.app.get("/_mock/quota")
        async def get_quota():
            return self._quota_state()

        @self.app.post("/_mock/quota")
        async def reset_quota(quota: Optional[int] = Query(None)):
            if quota is not None:
                self.quota = quota
            self.used = 0
            self.reset_epoch = int(time.time()) + self.window_seconds
            self.logger.info("Mock quota reset", quota=self.quota)
            return self._quota_state()

    def _quota_state(self) -> Dict[str, Any]:
        return {
            "limit": self.quota,
            "used": self.used,
            "remaining": max(0, self.quota - self.used),
            "reset": self.reset_epoch,
        }

    @staticmethod
    def _not_found() -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={"message": "Not Found", "documentation_url": "https://docs.github.com/rest"},
        )


def create_app(**kwargs):
    """Create mock GitHub application."""
    server = MockGitHubServer(**kwargs)
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8090)
