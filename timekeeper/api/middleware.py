"""HTTP middleware: per-client rate limiting and security response headers."""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from timekeeper.errors import RateLimited

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "X-DNS-Prefetch-Control": "off",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
}


@dataclass
class Hit:
    allowed: bool
    limit: int
    remaining: int
    reset_seconds: int


class FixedWindowLimiter:
    """Counts requests per client key in fixed windows of ``window_seconds``.

    State is in-process only, so each worker keeps its own budget.
    """

    def __init__(
        self,
        limit: int = 100,
        window_seconds: int = 900,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}

    @property
    def enabled(self) -> bool:
        return self.limit > 0

    def reset(self) -> None:
        self._windows.clear()

    def _prune(self, now: float) -> None:
        expired = [k for k, (start, _) in self._windows.items() if now - start >= self.window_seconds]
        for key in expired:
            del self._windows[key]

    def hit(self, key: str) -> Hit:
        now = self._clock()
        start, count = self._windows.get(key, (now, 0))
        if now - start >= self.window_seconds:
            self._prune(now)
            start, count = now, 0

        count += 1
        self._windows[key] = (start, count)
        reset = max(0, math.ceil(start + self.window_seconds - now))
        return Hit(
            allowed=count <= self.limit,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_seconds=reset,
        )


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Answers 429 once a client spends its budget for the current window.

    Paths in ``exempt_paths`` (health checks, docs) are never counted.
    Every counted response carries ``RateLimit-Limit``, ``RateLimit-Remaining``
    and ``RateLimit-Reset``.
    """

    def __init__(
        self,
        app,
        limiter: FixedWindowLimiter,
        exempt_paths: Optional[Iterable[str]] = None,
    ):
        super().__init__(app)
        self.limiter = limiter
        self.exempt_paths = set(exempt_paths or ())

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if (
            not self.limiter.enabled
            or request.method == "OPTIONS"
            or request.url.path in self.exempt_paths
        ):
            return await call_next(request)

        key = _client_key(request)
        hit = self.limiter.hit(key)
        headers = {
            "RateLimit-Limit": str(hit.limit),
            "RateLimit-Remaining": str(hit.remaining),
            "RateLimit-Reset": str(hit.reset_seconds),
        }

        if not hit.allowed:
            logger.warning("Rate limit exceeded for %s on %s", key, request.url.path)
            exc = RateLimited()
            headers["Retry-After"] = str(hit.reset_seconds)
            return JSONResponse(
                status_code=exc.status_code, content={"error": exc.message}, headers=headers
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response
