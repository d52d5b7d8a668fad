"""
Domain layer for the GitHub proxy.

Holds the proxy core (cache-or-fetch, enrichment fan-out), the fail-fast
join used by fan-out, and the pure mapping from upstream outcomes to the
normalized error taxonomy.
"""

from .fanout import gather_fail_fast
from .github_service import GitHubService
from .upstream_errors import UpstreamResult, normalize_response_error, normalize_transport_error

__all__ = [
    "GitHubService",
    "UpstreamResult",
    "gather_fail_fast",
    "normalize_response_error",
    "normalize_transport_error",
]
