"""
Guardian Shield - Rate Limiting Middleware.

Simple in-memory rate limiter for image uploads and AI step-image
generation. Suitable for single-instance deployments.
"""

import logging
import time
from collections import defaultdict

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)


class InMemoryRateLimiter:
    """In-memory rate limiter using a sliding window."""

    def __init__(self):
        self._requests: dict[str, list[float]] = defaultdict(list)

    def check_rate_limit(
        self,
        key: str,
        max_requests: int,
        window_seconds: int,
    ) -> bool:
        """
        Check if request is within rate limit.

        Args:
            key: Unique identifier (e.g., "upload:1.2.3.4")
            max_requests: Maximum allowed requests in window
            window_seconds: Time window in seconds

        Returns:
            True if request is allowed, False if rate limited
        """
        now = time.time()
        window_start = now - window_seconds

        # Remove requests outside the window
        self._requests[key] = [
            req_time
            for req_time in self._requests[key]
            if req_time > window_start
        ]

        if len(self._requests[key]) >= max_requests:
            logger.warning(
                f"Rate limit exceeded for {key}: "
                f"{len(self._requests[key])}/{max_requests} in {window_seconds}s"
            )
            return False

        self._requests[key].append(now)
        return True

    def get_remaining(self, key: str, max_requests: int, window_seconds: int) -> int:
        """Number of requests still allowed in the current window."""
        window_start = time.time() - window_seconds
        current_requests = sum(
            1 for req_time in self._requests.get(key, [])
            if req_time > window_start
        )
        return max(0, max_requests - current_requests)

    def clear_all(self) -> None:
        """Clear all rate limit data."""
        self._requests.clear()


def enforce_rate_limit(request: Request, scope: str, max_requests: int, window_seconds: int = 60) -> None:
    """Raise 429 when the caller exceeded max_requests for scope."""
    client_host = request.client.host if request.client else "unknown"
    if not get_rate_limiter().check_rate_limit(f"{scope}:{client_host}", max_requests, window_seconds):
        raise HTTPException(
            status_code=429,
            detail="Demasiadas solicitudes. Espera 1 minuto e intenta de nuevo.",
        )


# Singleton instance
_rate_limiter: InMemoryRateLimiter | None = None


def get_rate_limiter() -> InMemoryRateLimiter:
    """Get singleton rate limiter instance."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = InMemoryRateLimiter()
    return _rate_limiter
