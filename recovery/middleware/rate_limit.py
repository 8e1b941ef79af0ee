"""
Rate Limiting Middleware

Token bucket throttle on the recovery endpoints, keyed by client IP.

This sits in front of the per-account cooldown and limits how fast a
single client can probe accounts or guess codes.
"""

import time
from typing import Callable, Dict, Tuple
from dataclasses import dataclass, field

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from recovery.core.config import settings


# ============== Token Bucket Implementation ==============

@dataclass
class TokenBucket:
    """Token bucket for rate limiting."""
    capacity: int          # Maximum tokens
    refill_rate: float     # Tokens per second
    tokens: float = field(default=0, init=False)
    last_refill: float = field(default=0, init=False)

    def __post_init__(self):
        self.tokens = float(self.capacity)
        self.last_refill = time.monotonic()

    def consume(self, tokens: int = 1) -> bool:
        """
        Attempt to consume tokens.

        Returns:
            True if tokens were available, False otherwise.
        """
        self._refill()

        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False

    def seconds_until_available(self, tokens: int = 1) -> int:
        missing = max(tokens - self.tokens, 0)
        return max(int(missing / self.refill_rate + 0.999), 1)

    def _refill(self) -> None:
        """Refill tokens based on elapsed time."""
        now = time.monotonic()
        elapsed = now - self.last_refill

        self.tokens = min(
            self.capacity,
            self.tokens + (elapsed * self.refill_rate)
        )
        self.last_refill = now


# ============== Client Rate Limiter ==============

class ClientRateLimiter:
    """
    Per-client rate limiter using token bucket algorithm.
    """

    def __init__(
        self,
        requests_per_minute: int = 30,
        burst_capacity: int = 10,
    ):
        """
        Args:
            requests_per_minute: Sustained rate limit.
            burst_capacity: Maximum burst size.
        """
        self._buckets: Dict[str, TokenBucket] = {}
        self._burst_capacity = burst_capacity
        self._refill_rate = requests_per_minute / 60.0  # Per second

    def _get_key(self, request: Request) -> str:
        """Client IP, preferring the first X-Forwarded-For hop."""
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            ip = forwarded.split(",")[0].strip()
        else:
            ip = request.client.host if request.client else "unknown"

        return f"ip:{ip}"

    def _get_bucket(self, key: str) -> TokenBucket:
        """Get or create bucket for key."""
        if key not in self._buckets:
            self._buckets[key] = TokenBucket(
                capacity=self._burst_capacity,
                refill_rate=self._refill_rate,
            )
        return self._buckets[key]

    def check(self, request: Request) -> Tuple[bool, int]:
        """
        Check if request is allowed.

        Returns:
            tuple: (allowed, retry_after_seconds)
        """
        bucket = self._get_bucket(self._get_key(request))
        if bucket.consume():
            return True, 0
        return False, bucket.seconds_until_available()

    def cleanup(self, max_age: float = 3600) -> int:
        """
        Remove stale buckets.

        Args:
            max_age: Maximum age in seconds for inactive buckets.

        Returns:
            Number of buckets removed.
        """
        now = time.monotonic()
        stale_keys = [
            key for key, bucket in self._buckets.items()
            if (now - bucket.last_refill) > max_age
        ]

        for key in stale_keys:
            del self._buckets[key]

        return len(stale_keys)


recovery_limiter = ClientRateLimiter(
    requests_per_minute=settings.RECOVERY_REQUESTS_PER_MINUTE,
    burst_capacity=settings.RECOVERY_BURST_CAPACITY,
)


# ============== Middleware ==============

class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Applies the client throttle to requests under `path_prefix`.
    """

    def __init__(
        self,
        app,
        limiter: ClientRateLimiter = None,
        path_prefix: str = "/api/v1/recovery",
    ):
        super().__init__(app)
        self.limiter = limiter or recovery_limiter
        self.path_prefix = path_prefix

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        allowed, retry_after = self.limiter.check(request)
        if not allowed:
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "success": False,
                    "error": "RateLimited",
                    "message": "Too many requests. Please try again later.",
                    "retryAfterSeconds": retry_after,
                },
                headers={"Retry-After": str(retry_after)},
            )

        return await call_next(request)
