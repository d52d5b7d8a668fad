"""
GitHub profile proxy service package.

The proxy fronts the GitHub REST API, enforcing:
- Caching: per-process TTL store keyed on normalized request parameters
- Enrichment: concurrent fan-out to assemble profiles with repositories
- Error normalization: one taxonomy for rate limits, upstream and network failures
- Inbound rate limiting: fixed-window per-IP budgets

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.adapters: HTTP client for the GitHub API.
- app.caching: TTL cache and key builder.
- app.domain: Proxy core, fan-out join, error mapping.
- app.ratelimit: Fixed-window limiter and request helper.
"""
