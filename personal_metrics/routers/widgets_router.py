"""Routes for triggering provider syncs and serving widget content."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from personal_metrics.dependencies import SyncRunner, get_document_store, get_sync_runner
from personal_metrics.errors import DependencyError, NotFoundError, ValidationAppError
from personal_metrics.jobs.base import WIDGET_CONTENT_DOC
from personal_metrics.jobs.registry import SYNC_PROVIDERS
from personal_metrics.logging import get_logger
from personal_metrics.logging_events import log_event
from personal_metrics.storage.documents import DocumentStore, StoreError

router = APIRouter(prefix="/api/widgets", tags=["Widgets"])
logger = get_logger(__name__)

WIDGET_CACHE_CONTROL = "public, max-age=3600, s-maxage=7200"


def _normalize_provider(provider: str) -> str:
    return provider.strip().lower()


@router.get("/sync/{provider}")
async def sync_provider(
    provider: str,
    runner: SyncRunner = Depends(get_sync_runner),
) -> JSONResponse:
    """Run the provider's sync job; 200 on success, 500 on failure."""

    name = _normalize_provider(provider)
    if name not in SYNC_PROVIDERS:
        raise ValidationAppError(
            f"Unrecognized provider: {provider}",
            meta={"providers": list(SYNC_PROVIDERS)},
        )

    envelope = await runner(name)
    log_event(
        logger,
        "api.widgets.sync",
        component="router.widgets",
        status="ok" if envelope.ok else "error",
        provider=name,
    )
    return JSONResponse(status_code=200 if envelope.ok else 500, content=envelope.to_payload())


@router.get("/{provider}")
async def get_widget_content(
    provider: str,
    response: Response,
    documents: DocumentStore = Depends(get_document_store),
) -> dict[str, Any]:
    name = _normalize_provider(provider)
    if name not in SYNC_PROVIDERS:
        raise NotFoundError(f"No widget content for provider: {provider}")

    try:
        payload = await documents.get(name, WIDGET_CONTENT_DOC)
    except StoreError as exc:
        raise DependencyError("Widget content is temporarily unavailable.") from exc
    if payload is None:
        raise NotFoundError(f"Widget content for {name} has not been synced yet.")

    response.headers["Cache-Control"] = WIDGET_CACHE_CONTROL
    return {"ok": True, "payload": payload}


__all__ = ["WIDGET_CACHE_CONTROL", "router"]
