"""FastAPI application serving widget content and sync triggers."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from personal_metrics import __version__
from personal_metrics.config import AppConfig, load_config
from personal_metrics.db import init_db
from personal_metrics.dependencies import SyncRunner
from personal_metrics.jobs.registry import SYNC_PROVIDERS
from personal_metrics.logging import configure_logging, get_logger
from personal_metrics.middleware import install_middleware
from personal_metrics.middleware.rate_limit import RateLimiter
from personal_metrics.routers.widgets_router import router as widgets_router
from personal_metrics.storage.documents import DocumentStore

logger = get_logger(__name__)


def create_app(
    config: AppConfig | None = None,
    *,
    document_store: DocumentStore | None = None,
    sync_runner: SyncRunner | None = None,
    rate_limiter: RateLimiter | None = None,
) -> FastAPI:
    resolved = config or load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(resolved.logging.level)
        if document_store is None:
            init_db()
        logger.info("Personal metrics API started")
        yield
        logger.info("Personal metrics API stopped")

    app = FastAPI(title="Personal Metrics", version=__version__, lifespan=lifespan)
    app.state.config = resolved
    if document_store is not None:
        app.state.document_store = document_store
    if sync_runner is not None:
        app.state.sync_runner = sync_runner

    media_dir = Path(resolved.media.root)
    app.mount(
        "/media",
        StaticFiles(directory=media_dir, check_dir=False),
        name="media",
    )

    @app.get("/health", tags=["System"])
    async def health() -> dict[str, Any]:
        return {"ok": True, "version": __version__, "providers": list(SYNC_PROVIDERS)}

    app.include_router(widgets_router)
    install_middleware(app, resolved, rate_limiter=rate_limiter)
    return app


__all__ = ["create_app"]
