"""Fixed-window per-client rate limiting."""

from __future__ import annotations

from collections.abc import Callable, Collection, MutableMapping
from dataclasses import dataclass
import math
import threading
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from personal_metrics.errors import RateLimitedError
from personal_metrics.logging import get_logger
from personal_metrics.logging_events import log_event

_logger = get_logger(__name__)


@dataclass(slots=True)
class RateLimitWindow:
    count: int
    reset_at: float


@dataclass(slots=True, frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: float


class RateLimiter:
    """Count requests per key in fixed windows of ``window_seconds``.

    The clock and the window storage are injected so the limiter can be
    driven deterministically and so each application owns its own state.
    """

    def __init__(
        self,
        *,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        storage: MutableMapping[str, RateLimitWindow] | None = None,
    ) -> None:
        self.max_requests = max(1, int(max_requests))
        self.window_seconds = max(0.001, float(window_seconds))
        self._clock = clock
        self._storage: MutableMapping[str, RateLimitWindow] = {} if storage is None else storage
        self._lock = threading.Lock()
        self._next_sweep = 0.0

    def hit(self, key: str) -> RateLimitDecision:
        with self._lock:
            now = self._clock()
            if now >= self._next_sweep:
                self._drop_expired(now)
            window = self._storage.get(key)
            if window is None or now >= window.reset_at:
                window = RateLimitWindow(count=0, reset_at=now + self.window_seconds)
                self._storage[key] = window
            window.count += 1
            remaining = max(0, self.max_requests - window.count)
            if window.count > self.max_requests:
                return RateLimitDecision(False, 0, max(0.0, window.reset_at - now))
            return RateLimitDecision(True, remaining, 0.0)

    def prune(self) -> int:
        """Drop expired windows and return how many were removed.

        ``hit`` sweeps on its own at most once per window.
        """

        with self._lock:
            return self._drop_expired(self._clock())

    def _drop_expired(self, now: float) -> int:
        expired = [key for key, window in self._storage.items() if now >= window.reset_at]
        for key in expired:
            del self._storage[key]
        self._next_sweep = now + self.window_seconds
        return len(expired)

    def reset(self) -> None:
        with self._lock:
            self._storage.clear()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject clients that exceeded the limiter's budget with ``429``."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        limiter: RateLimiter,
        exempt_paths: Collection[str] = ("/health",),
    ) -> None:
        super().__init__(app)
        self._limiter = limiter
        self._exempt_paths = frozenset(exempt_paths)

    async def dispatch(  # type: ignore[override]
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in self._exempt_paths or request.method == "OPTIONS":
            return await call_next(request)

        client = request.client.host if request.client and request.client.host else "unknown"
        decision = self._limiter.hit(client)
        if not decision.allowed:
            retry_after_ms = int(decision.retry_after * 1000)
            log_event(
                _logger,
                "api.rate_limited",
                component="middleware.rate_limit",
                status="error",
                path=path,
                method=request.method,
                entity_id=getattr(request.state, "request_id", None),
                meta={"retry_after_ms": retry_after_ms},
            )
            error = RateLimitedError(
                retry_after_ms=retry_after_ms,
                retry_after_header=str(max(1, math.ceil(decision.retry_after))),
            )
            return error.as_response(request_path=path, method=request.method)

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self._limiter.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        return response


__all__ = ["RateLimitDecision", "RateLimitMiddleware", "RateLimitWindow", "RateLimiter"]
