"""
Per-client request rate limiting.

A fixed-window counter per client address: each client may make
`limit` requests per `window_seconds`; the window starts with the client's
first request and the count resets when it ends. Requests over the limit are
answered with HTTP 429 and a JSON-RPC error before they reach routing or
authentication.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from taxpayer_mcp.errors import RateLimitedError

logger = logging.getLogger("taxpayer-mcp")


@dataclass
class _Window:
    started: float
    count: int


class FixedWindowRateLimiter:
    """In-memory fixed-window counters keyed by client."""

    def __init__(
        self,
        limit: int = 100,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}

    def acquire(self, key: str) -> float | None:
        """
        Count one request for `key`.

        Returns None when the request is allowed, otherwise the number of
        seconds until the client's window resets.
        """
        now = self._clock()
        window = self._windows.get(key)
        if window is None or now - window.started >= self.window_seconds:
            self._prune(now)
            self._windows[key] = _Window(started=now, count=1)
            return None
        if window.count < self.limit:
            window.count += 1
            return None
        return window.started + self.window_seconds - now

    def _prune(self, now: float) -> None:
        expired = [k for k, w in self._windows.items() if now - w.started >= self.window_seconds]
        for key in expired:
            del self._windows[key]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Rejects clients that exceed their request budget.

    Clients are identified by their remote address. Paths in `exempt_paths`
    (the health check) are never counted.
    """

    def __init__(
        self,
        app,
        limiter: FixedWindowRateLimiter,
        exempt_paths: frozenset[str] = frozenset({"/health"}),
    ):
        super().__init__(app)
        self.limiter = limiter
        self.exempt_paths = exempt_paths

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method == "OPTIONS" or request.url.path in self.exempt_paths:
            return await call_next(request)

        client_ip = request.client.host if request.client else "anonymous"
        retry_after = self.limiter.acquire(client_ip)
        if retry_after is None:
            return await call_next(request)

        logger.warning(
            "Rate limit exceeded",
            extra={
                "log_data": {
                    "client_ip": client_ip,
                    "path": request.url.path,
                    "limit": self.limiter.limit,
                    "window_seconds": self.limiter.window_seconds,
                }
            },
        )
        error = RateLimitedError("Rate limit exceeded. Try again later.")
        return JSONResponse(
            {"jsonrpc": "2.0", "id": None, "error": error.to_error()},
            status_code=429,
            headers={"Retry-After": str(max(math.ceil(retry_after), 1))},
        )
