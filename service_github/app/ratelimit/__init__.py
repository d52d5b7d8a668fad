"""
Rate limiting package for the GitHub proxy.

Holds the fixed-window limiter that enforces per-IP request budgets on
inbound traffic (a general API budget and a stricter one for expensive or
administrative routes).
"""

from .fixed_window import FixedWindowRateLimiter, RateLimitMiddleware, get_client_ip

__all__ = ["FixedWindowRateLimiter", "RateLimitMiddleware", "get_client_ip"]
