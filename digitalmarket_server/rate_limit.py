# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""In-memory rate limiting for auth endpoints (brute-force protection).

Reset codes are only six digits, so the reset endpoints get tight limits,
both per client address and per target email.
"""

import time
from collections import defaultdict

from fastapi import HTTPException, Request, status

from digitalmarket_server.config import settings
from digitalmarket_server.i18n import parse_accept_language, translate

# (client_key, endpoint) -> list of request timestamps in window
_buckets: defaultdict[tuple[str, str], list[float]] = defaultdict(list)
_last_sweep = float("-inf")
# Window seconds; max requests per window per endpoint
WINDOW = 60
LIMITS: dict[str, int] = {
    "/api/v1/auth/login": 10,
    "/api/v1/auth/register": 5,
    "/api/v1/auth/forgot-password": 5,
    "/api/v1/auth/reset-password": 10,
}
# Max attempts per window against one email, whatever address they come from
EMAIL_LIMITS: dict[str, int] = {
    "/api/v1/auth/reset-password": 10,
}


def _client_key(request: Request) -> str:
    """Client address. X-Forwarded-For only counts behind a trusted proxy."""
    if settings.trust_proxy_headers:
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


def _sweep(now: float) -> None:
    """Drop keys whose requests have all left the window. Runs at most once per window."""
    global _last_sweep
    if now - _last_sweep < WINDOW:
        return
    _last_sweep = now
    for key in list(_buckets):
        _clean_old(_buckets[key], now)
        if not _buckets[key]:
            del _buckets[key]


def reset_limits() -> None:
    """Forget all recorded requests."""
    global _last_sweep
    _buckets.clear()
    _last_sweep = float("-inf")


def _hit(request: Request, key: tuple[str, str], limit: int) -> None:
    now = time.monotonic()
    _sweep(now)
    bucket = _buckets[key]
    _clean_old(bucket, now)
    if len(bucket) >= limit:
        lang = parse_accept_language(request.headers.get("accept-language"))
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=translate("too_many_requests", lang),
        )
    bucket.append(now)


def check_rate_limit(request: Request, path: str) -> None:
    """
    Raise 429 if the client has exceeded the limit for this path.
    Call this at the start of the endpoint (or via a dependency).
    """
    limit = LIMITS.get(path)
    if limit is None:
        return
    _hit(request, (_client_key(request), path), limit)


def check_email_rate_limit(request: Request, path: str, email: str) -> None:
    """Raise 429 if ``email`` has been targeted too often on this path."""
    limit = EMAIL_LIMITS.get(path)
    if limit is None or not email:
        return
    _hit(request, ("email:" + email, path), limit)


async def rate_limit_auth_dep(request: Request) -> None:
    """FastAPI dependency: rate limit auth endpoints. Add Depends(rate_limit_auth_dep) to routes."""
    path = request.url.path.rstrip("/")
    if path in LIMITS:
        check_rate_limit(request, path)
