"""In-process caches and rate limiting."""

from .rate_limit import (
    RateLimiter,
    RateLimitResult,
    check_rate_limit,
    get_api_rate_limiter,
    get_write_rate_limiter,
    parse_rate_limit,
    reset_rate_limiters,
)
from .ttl import TTLCache


__all__ = [
    # Cache
    "TTLCache",
    # Rate limiting
    "RateLimiter",
    "RateLimitResult",
    "check_rate_limit",
    "get_api_rate_limiter",
    "get_write_rate_limiter",
    "parse_rate_limit",
    "reset_rate_limiters",
]
