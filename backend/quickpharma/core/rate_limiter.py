"""
Request throttling for the public API.

Two sliding-window budgets are kept in process memory (per worker):
- the credential endpoints (login / register) are keyed by client IP and
  get a small budget, since every call runs bcrypt
- everything else is keyed by the caller's token when one is presented
  (Bearer header or auth cookie), otherwise by client IP
"""
import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Tuple

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from quickpharma.core.config import settings

logger = logging.getLogger(__name__)

UNTHROTTLED_PATHS = ("/health", "/docs", "/redoc", "/openapi.json")
CREDENTIAL_PATHS = ("/api/Auth/login", "/api/Auth/register")


class SlidingWindow:
    """Counts hits per key inside the trailing `window` seconds."""

    def __init__(self, limit: int, window: int):
        self.limit = limit
        self.window = window
        self.hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._last_sweep = time.monotonic()

    def hit(self, key: str) -> Tuple[bool, int]:
        """Record a hit; returns (allowed, remaining)."""
        now = time.monotonic()
        if now - self._last_sweep > 5 * self.window:
            self._sweep(now)

        bucket = self.hits[key]
        while bucket and bucket[0] <= now - self.window:
            bucket.popleft()

        if len(bucket) >= self.limit:
            return False, 0
        bucket.append(now)
        return True, self.limit - len(bucket)

    def reset(self) -> None:
        self.hits.clear()

    def _sweep(self, now: float) -> None:
        stale = [key for key, bucket in self.hits.items() if not bucket or bucket[-1] <= now - self.window]
        for key in stale:
            del self.hits[key]
        self._last_sweep = now
        logger.debug(f"Throttle sweep dropped {len(stale)} idle keys, {len(self.hits)} active")


class RateLimiter:
    def __init__(self, requests: int, window: int, credential_requests: int):
        self.general = SlidingWindow(requests, window)
        self.credentials = SlidingWindow(credential_requests, window)

    def check(self, request: Request) -> Tuple[bool, int, SlidingWindow]:
        client_ip = request.client.host if request.client else "unknown"
        if request.url.path in CREDENTIAL_PATHS:
            allowed, remaining = self.credentials.hit(f"ip:{client_ip}")
            return allowed, remaining, self.credentials

        auth_header = request.headers.get("authorization", "")
        token = auth_header[7:] if auth_header.startswith("Bearer ") else request.cookies.get(settings.AUTH_COOKIE_NAME)
        key = f"token:{token[-32:]}" if token else f"ip:{client_ip}"
        allowed, remaining = self.general.hit(key)
        return allowed, remaining, self.general

    def reset(self) -> None:
        self.general.reset()
        self.credentials.reset()


rate_limiter = RateLimiter(
    requests=settings.RATE_LIMIT_REQUESTS,
    window=settings.RATE_LIMIT_WINDOW_SECONDS,
    credential_requests=settings.AUTH_RATE_LIMIT_REQUESTS,
)


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.url.path in UNTHROTTLED_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        allowed, remaining, window = rate_limiter.check(request)
        if not allowed:
            logger.warning(f"Throttled {request.method} {request.url.path} from {request.client}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Too many requests. Please try again shortly."},
                headers={"Retry-After": str(window.window)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(window.limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response
