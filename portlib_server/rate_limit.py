# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""In-memory rate limiting for auth endpoints (OTP and credential brute-force protection)."""

import time
from collections import defaultdict

from fastapi import HTTPException, Request

from portlib_server.config import settings

# (client_key, endpoint) -> list of request timestamps in window
_buckets: defaultdict[tuple[str, str], list[float]] = defaultdict(list)
# Window seconds; max requests per window per endpoint
WINDOW = 60
_PER_ENDPOINT = {
    "signup": 5,
    "verify-otp": 10,
    "login": 10,
    "verify-login-otp": 10,
    "forgot-password": 5,
    "reset-password": 10,
}
LIMITS: dict[str, int] = {
    f"/api/v1/auth/{audience}/{endpoint}": limit
    for audience in ("user", "admin")
    for endpoint, limit in _PER_ENDPOINT.items()
}


def _client_key(request: Request) -> str:
    """Prefer X-Forwarded-For when behind a proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host or "unknown"
    return "unknown"


def _clean_old(bucket: list[float], now: float) -> None:
    cutoff = now - WINDOW
    while bucket and bucket[0] < cutoff:
        bucket.pop(0)


def reset_rate_limits() -> None:
    _buckets.clear()


def check_rate_limit(request: Request, path: str) -> None:
    """Raise 429 if the client has exceeded the limit for this path."""
    limit = LIMITS.get(path)
    if limit is None:
        return
    now = time.monotonic()
    bucket = _buckets[(_client_key(request), path)]
    _clean_old(bucket, now)
    if len(bucket) >= limit:
        raise HTTPException(
            status_code=429,
            detail="Too many requests. Please try again later.",
        )
    bucket.append(now)


async def rate_limit_auth_dep(request: Request) -> None:
    """FastAPI dependency: rate limit auth endpoints."""
    if not settings.rate_limit_enabled:
        return
    path = request.url.path.rstrip("/")
    if path in LIMITS:
        check_rate_limit(request, path)
