"""Application middleware registration helpers."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from personal_metrics.config import AppConfig

from .errors import setup_exception_handlers
from .logging import APILoggingMiddleware
from .rate_limit import RateLimiter, RateLimitMiddleware
from .request_id import RequestIDMiddleware


def install_middleware(
    app: FastAPI, config: AppConfig, *, rate_limiter: RateLimiter | None = None
) -> None:
    """Install the middleware stack; the last one added runs first."""

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=config.cors.allow_origin_regex,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
        allow_credentials=False,
        expose_headers=["X-Request-ID"],
    )

    if config.rate_limit.enabled:
        limiter = rate_limiter or RateLimiter(
            max_requests=config.rate_limit.max_requests,
            window_seconds=config.rate_limit.window_seconds,
        )
        app.state.rate_limiter = limiter
        app.add_middleware(RateLimitMiddleware, limiter=limiter)

    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(APILoggingMiddleware)

    setup_exception_handlers(app)


__all__ = ["install_middleware"]
