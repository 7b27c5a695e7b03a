from __future__ import annotations

import logging
import time
from collections import deque
from typing import Callable, Deque, Dict

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from settings import SETTINGS


logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60

# Health checks are never rate limited.
_EXEMPT_PATHS = {"/health"}


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, requests_per_minute: int | None = None, clock: Callable[[], float] = time.time) -> None:
        super().__init__(app)
        self.requests_per_minute = requests_per_minute or SETTINGS.rate_limit_per_minute
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()

    def _sweep(self, now: float) -> None:
        """Forget clients whose newest hit has left the window."""
        idle = [ip for ip, bucket in self._hits.items() if not bucket or now - bucket[-1] > WINDOW_SECONDS]
        for ip in idle:
            del self._hits[ip]
        self._last_sweep = now

    async def dispatch(self, request: Request, call_next):
        if request.url.path in _EXEMPT_PATHS or request.method == "OPTIONS":
            return await call_next(request)
        ip = request.client.host if request.client else "unknown"
        now = self._clock()
        if now - self._last_sweep > WINDOW_SECONDS:
            self._sweep(now)
        bucket = self._hits.setdefault(ip, deque())
        while bucket and now - bucket[0] > WINDOW_SECONDS:
            bucket.popleft()
        if len(bucket) >= self.requests_per_minute:
            logger.warning("rate_limited", extra={"ip": ip, "path": request.url.path})
            return JSONResponse({"detail": "rate_limited"}, status_code=429)
        bucket.append(now)
        return await call_next(request)
