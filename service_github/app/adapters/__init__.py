"""
Adapters package for the GitHub proxy.

Contains the HTTP client wrapper for the upstream GitHub REST API. The
adapter encapsulates:

- Base URL, media type and credential headers
- Per-call timeout and pooled connections
- Error handling that maps to shared errors

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .github_client import GitHubClient

__all__ = [
    "GitHubClient",
]
