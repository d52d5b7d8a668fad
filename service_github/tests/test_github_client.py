"""
Unit tests for the GitHub API client.
"""

import httpx
import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_github.app.adapters.github_client import GitHubClient
from shared.errors import ErrorKind, NetworkError, ProxyError, RateLimitError, UpstreamServiceError
from shared.metrics import MetricsCollector
from shared.test_helpers import FakeGitHubUpstream, github_data_factory


NOW = 1_700_000_000


class TestGitHubClient:
    """Test cases for GitHubClient."""

    @pytest.fixture
    def upstream(self):
        return FakeGitHubUpstream()

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("github-proxy")

    @pytest.fixture
    def client(self, upstream, metrics):
        """Create an unauthenticated client over the fake upstream."""
        return GitHubClient(
            "https://api.github.com",
            transport=upstream.transport(),
            metrics=metrics,
            clock=lambda: NOW,
        )

    @pytest.mark.asyncio
    async def test_default_headers(self, client, upstream):
        await client.get_user("octocat")

        request = upstream.requests[-1]
        assert request.headers["Accept"] == "application/vnd.github.v3+json"
        assert request.headers["User-Agent"] == "GitHub-Profile-Shop"
        assert "Authorization" not in request.headers
        assert client.authenticated is False

    @pytest.mark.asyncio
    async def test_token_header(self, upstream):
        client = GitHubClient("https://api.github.com", "ghp_secret", transport=upstream.transport())

        await client.get_user("octocat")

        assert upstream.requests[-1].headers["Authorization"] == "token ghp_secret"
        assert client.authenticated is True
        await client.close()

    @pytest.mark.asyncio
    async def test_list_users_query(self, client, upstream):
        users = await client.list_users(since=46, per_page=5)

        request = upstream.requests[-1]
        assert request.url.path == "/users"
        assert request.url.params["since"] == "46"
        assert request.url.params["per_page"] == "5"
        assert [user["id"] for user in users] == [47, 48, 49, 50, 51]

    @pytest.mark.asyncio
    async def test_username_is_path_quoted(self, client, upstream):
        await client.list_user_repos("weird name", sort="created", per_page=100)

        request = upstream.requests[-1]
        assert b"/users/weird%20name/repos" in request.url.raw_path
        assert request.url.params["sort"] == "created"

    @pytest.mark.asyncio
    async def test_search_repositories_params(self, client, upstream):
        page = await client.search_repositories("created:>2024-01-01 language:python")

        params = upstream.requests[-1].url.params
        assert params["q"] == "created:>2024-01-01 language:python"
        assert params["sort"] == "stars"
        assert params["order"] == "desc"
        assert params["per_page"] == "30"
        assert page["total_count"] == 500

    @pytest.mark.asyncio
    async def test_request_success_result(self, client):
        result = await client.request("user", "/users/octocat")

        assert result.ok is True
        assert result.value["login"] == "octocat"

    @pytest.mark.asyncio
    async def test_not_found_raises_upstream_error(self, client, upstream):
        upstream.fail("/users/ghost", 404, {"message": "Not Found"})

        with pytest.raises(UpstreamServiceError) as exc_info:
            await client.get_user("ghost")

        assert exc_info.value.status_code == 404
        assert exc_info.value.error == "Not Found"

    @pytest.mark.asyncio
    async def test_rate_limit_raises_rate_limit_error(self, client, upstream):
        upstream.fail(
            "/users/octocat",
            403,
            {"message": "API rate limit exceeded"},
            github_data_factory.rate_limit_headers(NOW + 300),
        )

        with pytest.raises(RateLimitError) as exc_info:
            await client.get_user("octocat")

        assert exc_info.value.retry_after == 300
        assert exc_info.value.message == "Rate limit will reset at 22:18:20 UTC"

    @pytest.mark.asyncio
    async def test_transport_error_becomes_network_error(self, client, upstream):
        upstream.fail_network("/users/octocat")

        result = await client.request("user", "/users/octocat")

        assert result.ok is False
        assert isinstance(result.error, NetworkError)
        assert result.error.message == "Connection refused"

    @pytest.mark.asyncio
    async def test_timeout_becomes_network_error(self, client, upstream):
        upstream.fail_network("/users/octocat", httpx.ReadTimeout("timed out"))

        with pytest.raises(ProxyError) as exc_info:
            await client.get_user("octocat")

        assert exc_info.value.kind == ErrorKind.NETWORK_ERROR
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_undecodable_success_body(self, client, upstream):
        upstream.overrides["/users/octocat"] = httpx.Response(200, text="<html>")

        with pytest.raises(UpstreamServiceError) as exc_info:
            await client.get_user("octocat")

        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_records_upstream_metrics(self, client, upstream, metrics):
        await client.get_user("octocat")
        upstream.fail("/users/ghost", 404, {"message": "Not Found"})
        with pytest.raises(UpstreamServiceError):
            await client.get_user("ghost")

        registry = metrics.registry
        assert registry.get_sample_value("upstream_requests_total", {"endpoint": "user", "status": "200"}) == 1
        assert registry.get_sample_value("upstream_requests_total", {"endpoint": "user", "status": "404"}) == 1
        assert registry.get_sample_value("upstream_errors_total", {"kind": "UpstreamError"}) == 1

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, client):
        await client.get_user("octocat")
        await client.close()
        await client.close()
