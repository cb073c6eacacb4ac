"""Client-IP keyed rate limiting for the vendor-heavy endpoints."""

from __future__ import annotations

import os

from fastapi import Request
from slowapi import Limiter

DEFAULT_CRAWL_RATE_LIMIT = "30/minute"


def get_client_ip(request: Request) -> str:
    """Extract a best-effort client IP for rate limiting.

    Prefer ``X-Forwarded-For`` (first hop) if present, otherwise use the
    socket peer address.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def crawl_rate_limit() -> str:
    """Limit applied to crawl and summarize requests (``CRAWL_RATE_LIMIT``)."""
    return os.getenv("CRAWL_RATE_LIMIT", DEFAULT_CRAWL_RATE_LIMIT)


def rate_limit_enabled() -> bool:
    return os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"


limiter = Limiter(key_func=get_client_ip)

__all__ = ["crawl_rate_limit", "get_client_ip", "limiter", "rate_limit_enabled"]
