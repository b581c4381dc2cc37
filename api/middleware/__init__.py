"""Guardian Shield - API Middleware."""

from api.middleware.rate_limit import InMemoryRateLimiter, enforce_rate_limit, get_rate_limiter

__all__ = ["InMemoryRateLimiter", "enforce_rate_limit", "get_rate_limiter"]
