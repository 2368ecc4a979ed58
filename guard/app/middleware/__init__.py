"""Middleware and limiters for the guard."""

from guard.app.middleware.rate_limit import (
    ApiRateLimitMiddleware,
    InMemoryRateLimiter,
    RateLimitBackend,
    RateLimitConfig,
    RateLimiter,
    RateLimitResult,
    RedisRateLimiter,
)

__all__ = [
    "ApiRateLimitMiddleware",
    "InMemoryRateLimiter",
    "RateLimitBackend",
    "RateLimitConfig",
    "RateLimiter",
    "RateLimitResult",
    "RedisRateLimiter",
]
