"""
Propodocs Backend — Rate Limiting
===================================

What:  Fixed-window request limits per client, globally (middleware) and
       stricter per route for AI generation (dependency).
Why:   Generation endpoints cost real money per call; the rest of the API
       only needs protection from runaway clients.

Algorithm: Fixed Window Counter in a bounded cache
    Each client key maps to {count, reset_at}.
    1. Look the key up; an entry past reset_at is treated as absent (lazy expiry)
    2. Absent → new window {count: 1, reset_at: now + window}
    3. Present and count < limit → count += 1
    4. Otherwise → reject with 429 and Retry-After = reset_at - now

Memory Bound:
    RateLimitStore is an OrderedDict capped at RATE_LIMIT_MAX_KEYS. Touching
    a key moves it to the end; inserting beyond the cap evicts the least
    recently used key. A periodic sweep() (started in the app lifespan)
    drops expired windows so idle clients do not linger until eviction.

Client Keys:
    "user:<id>" when the request carries a valid bearer token, otherwise
    "ip:<address>". Authenticated users keep their budget across networks.

Single-process only: each uvicorn worker has its own store.
"""

import logging
import math
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

from propodocs.auth import bearer_token, user_id_from_token
from propodocs.config import settings
from propodocs.exceptions import RateLimitExceededError
from propodocs.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)


@dataclass
class WindowEntry:
    count: int
    reset_at: float


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int

    def headers(self) -> dict:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(math.ceil(self.reset_at))),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimitStore:
    """
    Bounded, lazily-expiring map of client key → fixed window.

    `clock` is injectable so tests can move time without sleeping.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        max_keys: int = 10_000,
        clock: Callable[[], float] = time.time,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self.max_keys = max_keys
        self.clock = clock
        self._entries: "OrderedDict[str, WindowEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def hit(self, key: str) -> RateLimitDecision:
        """Count one request for `key` and decide whether it may proceed."""
        now = self.clock()
        entry = self._entries.get(key)

        if entry is None or entry.reset_at <= now:
            entry = WindowEntry(count=1, reset_at=now + self.window_seconds)
            self._entries[key] = entry
            self._entries.move_to_end(key)
            self._evict_overflow()
            return self._decision(entry, allowed=True, now=now)

        self._entries.move_to_end(key)
        if entry.count >= self.limit:
            return self._decision(entry, allowed=False, now=now)

        entry.count += 1
        return self._decision(entry, allowed=True, now=now)

    def sweep(self) -> int:
        """Drop every expired window. Returns how many entries were removed."""
        now = self.clock()
        expired = [key for key, entry in self._entries.items() if entry.reset_at <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Rate limit sweep removed %d expired entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def _evict_overflow(self) -> None:
        while len(self._entries) > self.max_keys:
            key, _ = self._entries.popitem(last=False)
            logger.debug("Rate limit store full, evicted %s", key)

    def _decision(self, entry: WindowEntry, allowed: bool, now: float) -> RateLimitDecision:
        return RateLimitDecision(
            allowed=allowed,
            limit=self.limit,
            remaining=max(0, self.limit - entry.count),
            reset_at=entry.reset_at,
            retry_after=max(1, int(math.ceil(entry.reset_at - now))),
        )


def client_key(request: Request) -> str:
    """user:<id> for a valid bearer token, ip:<address> otherwise."""
    token = bearer_token(request)
    if token:
        user_id = user_id_from_token(token)
        if user_id is not None:
            return f"user:{user_id}"
    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"


# ══════════════════════════════════════════════════════════════════════════
# Global limiter (middleware)
# ══════════════════════════════════════════════════════════════════════════


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Applies the standard limit to every request outside EXCLUDED_PATHS.

    Over the limit: 429 with Retry-After and the standard error body.
    Otherwise: the response carries X-RateLimit-* headers.
    """

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, store: Optional[RateLimitStore] = None, **kwargs):
        super().__init__(app, **kwargs)
        self.store = store if store is not None else standard_store

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self.EXCLUDED_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        key = client_key(request)
        decision = self.store.hit(key)

        if not decision.allowed:
            logger.warning(
                "Rate limit exceeded for %s on %s (limit %d per %ds)",
                key, request.url.path, decision.limit, self.store.window_seconds,
            )
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": (
                        f"Too many requests. Please wait {decision.retry_after} seconds "
                        "before retrying."
                    ),
                    "details": {"retry_after": decision.retry_after},
                    "request_id": request_id_var.get("") or None,
                },
                headers=decision.headers(),
            )

        response = await call_next(request)
        response.headers.update(decision.headers())
        return response


# ══════════════════════════════════════════════════════════════════════════
# Strict per-route limiter (dependency)
# ══════════════════════════════════════════════════════════════════════════


class StrictRateLimit:
    """
    Route dependency enforcing the tighter limit for AI generation.

    Usage:
        @router.post("/generate", dependencies=[Depends(strict_rate_limit)])
    """

    def __init__(self, store: RateLimitStore):
        self.store = store

    async def __call__(self, request: Request, response: Response) -> None:
        key = client_key(request)
        decision = self.store.hit(key)
        if not decision.allowed:
            logger.warning("Strict rate limit exceeded for %s on %s", key, request.url.path)
            raise RateLimitExceededError(
                retry_after=decision.retry_after,
                message=(
                    "Too many AI generation requests. "
                    f"Please wait {decision.retry_after} seconds and try again."
                ),
            )
        response.headers.update(decision.headers())


# ── Singleton Instances ───────────────────────────────────────────────────
standard_store = RateLimitStore(
    limit=settings.rate_limit_requests,
    window_seconds=settings.rate_limit_window,
    max_keys=settings.rate_limit_max_keys,
)
strict_store = RateLimitStore(
    limit=settings.strict_rate_limit_requests,
    window_seconds=settings.strict_rate_limit_window,
    max_keys=settings.rate_limit_max_keys,
)
strict_rate_limit = StrictRateLimit(strict_store)
