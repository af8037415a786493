"""Shared state machine for provider sync jobs."""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict

from personal_metrics.integrations.contracts import SummaryProvider
from personal_metrics.logging import get_logger
from personal_metrics.logging_events import log_event, now_ms
from personal_metrics.services.media_sync import MediaSyncHelper, UploadResult, uploaded_keys
from personal_metrics.services.summaries import run_optional
from personal_metrics.storage.documents import DocumentStore
from personal_metrics.utils.time import timestamp

logger = get_logger(__name__)

WIDGET_CONTENT_DOC = "widget-content"
AI_SUMMARY_DOC = "last-response_ai-summary"


class SyncState(str, Enum):
    FETCHING = "fetching"
    ENRICHING = "enriching"
    UPLOADING_MEDIA = "uploading_media"
    SUMMARIZING = "summarizing"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class SyncOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class SyncResultEnvelope(BaseModel):
    """Uniform result of a sync run; providers may add extra top-level fields."""

    model_config = ConfigDict(extra="allow")

    result: SyncOutcome
    data: dict[str, Any] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.result is SyncOutcome.SUCCESS

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


@dataclass(slots=True)
class SyncContext:
    """Mutable state carried through the stages of one run."""

    stored_keys: frozenset[str] = frozenset()
    fetched: dict[str, Any] = field(default_factory=dict)
    uploads: list[UploadResult] = field(default_factory=list)
    document: dict[str, Any] = field(default_factory=dict)

    def uploaded_keys(self) -> list[str]:
        return uploaded_keys(self.uploads)


class SyncJob(ABC):
    """Run ``FETCHING → ENRICHING → UPLOADING_MEDIA → SUMMARIZING → PERSISTING``.

    Only a failure while fetching or persisting fails the run. Enrichment,
    media and summary failures are logged and the run continues without them.
    """

    provider: str = ""

    def __init__(
        self,
        *,
        documents: DocumentStore,
        media: MediaSyncHelper,
        summarizer: SummaryProvider | None = None,
    ) -> None:
        self._documents = documents
        self._media = media
        self._summarizer = summarizer
        self.history: list[SyncState] = []

    @property
    def state(self) -> SyncState | None:
        return self.history[-1] if self.history else None

    @abstractmethod
    async def fetch(self, context: SyncContext) -> None:
        """Populate ``context.fetched``; any exception fails the run."""

    @abstractmethod
    async def enrich(self, context: SyncContext) -> None:
        """Cross-reference the fetched data."""

    @abstractmethod
    async def upload_media(self, context: SyncContext) -> None:
        """Copy new media into the media store, extending ``context.uploads``."""

    @abstractmethod
    def build_document(self, context: SyncContext) -> dict[str, Any]:
        """Assemble the widget content document from the context."""

    @abstractmethod
    def raw_documents(self, context: SyncContext) -> dict[str, dict[str, Any]]:
        """Return the raw upstream snapshots to persist, keyed by document id."""

    def summary_prompt(self, document: Mapping[str, Any]) -> str | None:
        return None

    def envelope_extras(self, context: SyncContext) -> dict[str, Any]:
        return {}

    def _enter(self, state: SyncState) -> None:
        self.history.append(state)
        log_event(
            logger,
            f"sync.{self.provider}.state",
            level=logging.DEBUG,
            component="jobs.sync",
            status="ok",
            state=state.value,
        )

    def _fail(self, exc: Exception, *, started: int) -> SyncResultEnvelope:
        failed_in = self.state.value if self.state else "unknown"
        self._enter(SyncState.FAILED)
        log_event(
            logger,
            f"sync.{self.provider}.run",
            level=logging.ERROR,
            component="jobs.sync",
            status="error",
            stage=failed_in,
            error=type(exc).__name__,
            duration_ms=now_ms() - started,
            meta={"message": str(exc)},
        )
        return SyncResultEnvelope(result=SyncOutcome.FAILURE, error=str(exc) or type(exc).__name__)

    async def _degrade(self, stage: SyncState, step: Any, context: SyncContext) -> None:
        try:
            await step(context)
        except Exception as exc:
            log_event(
                logger,
                f"sync.{self.provider}.{stage.value}",
                level=logging.WARNING,
                component="jobs.sync",
                status="partial",
                error=type(exc).__name__,
                meta={"message": str(exc)},
            )

    async def run(self) -> SyncResultEnvelope:
        started = now_ms()
        self.history = []
        context = SyncContext()

        self._enter(SyncState.FETCHING)
        try:
            stored_keys, _ = await asyncio.gather(
                self._media.list_stored_keys(), self.fetch(context)
            )
        except Exception as exc:
            return self._fail(exc, started=started)
        context.stored_keys = stored_keys

        self._enter(SyncState.ENRICHING)
        await self._degrade(SyncState.ENRICHING, self.enrich, context)

        self._enter(SyncState.UPLOADING_MEDIA)
        await self._degrade(SyncState.UPLOADING_MEDIA, self.upload_media, context)

        document = self.build_document(context)
        document["meta"] = {**document.get("meta", {}), "synced": timestamp()}

        summary: str | None = None
        prompt = self.summary_prompt(document)
        if self._summarizer is not None and prompt:
            self._enter(SyncState.SUMMARIZING)
            summary = await run_optional(
                lambda: self._summarizer.summarize(prompt),
                name="summary",
                provider=self.provider,
            )
            if summary:
                document["aiSummary"] = summary
        context.document = document

        self._enter(SyncState.PERSISTING)
        try:
            await self._persist(context, summary)
        except Exception as exc:
            return self._fail(exc, started=started)

        self._enter(SyncState.DONE)
        log_event(
            logger,
            f"sync.{self.provider}.run",
            component="jobs.sync",
            status="ok",
            duration_ms=now_ms() - started,
            uploaded=len(context.uploaded_keys()),
        )
        return SyncResultEnvelope(
            result=SyncOutcome.SUCCESS, data=document, **self.envelope_extras(context)
        )

    async def _persist(self, context: SyncContext, summary: str | None) -> None:
        fetched_at = timestamp()
        for doc_id, payload in self.raw_documents(context).items():
            await self._documents.set(self.provider, doc_id, {**payload, "fetchedAt": fetched_at})
        await self._documents.set(self.provider, WIDGET_CONTENT_DOC, context.document)
        if summary:
            await self._documents.set(
                self.provider,
                AI_SUMMARY_DOC,
                {"summary": summary, "generatedAt": fetched_at},
            )


__all__ = [
    "AI_SUMMARY_DOC",
    "SyncContext",
    "SyncJob",
    "SyncOutcome",
    "SyncResultEnvelope",
    "SyncState",
    "WIDGET_CONTENT_DOC",
]
