"""FastAPI dependency providers."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import Request

from personal_metrics.config import AppConfig, load_config
from personal_metrics.jobs.base import SyncResultEnvelope
from personal_metrics.jobs.registry import run_sync
from personal_metrics.storage.documents import DocumentStore, SqlDocumentStore

SyncRunner = Callable[[str], Awaitable[SyncResultEnvelope]]


def get_app_config(request: Request) -> AppConfig:
    config = getattr(request.app.state, "config", None)
    if isinstance(config, AppConfig):
        return config
    return load_config()


def get_document_store(request: Request) -> DocumentStore:
    store = getattr(request.app.state, "document_store", None)
    if store is not None:
        return store
    return SqlDocumentStore()


def get_sync_runner(request: Request) -> SyncRunner:
    runner = getattr(request.app.state, "sync_runner", None)
    if runner is not None:
        return runner
    config = get_app_config(request)

    async def _run(provider: str) -> SyncResultEnvelope:
        return await run_sync(provider, config)

    return _run


__all__ = ["SyncRunner", "get_app_config", "get_document_store", "get_sync_runner"]
