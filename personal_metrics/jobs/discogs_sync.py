"""Discogs sync: the vinyl collection with release details and artwork."""

from __future__ import annotations

from typing import Any

from personal_metrics.integrations.contracts import SummaryProvider
from personal_metrics.integrations.discogs_client import DiscogsClient
from personal_metrics.jobs.base import SyncContext, SyncJob
from personal_metrics.logging import get_logger
from personal_metrics.services.media_sync import MediaSyncHelper
from personal_metrics.services.summaries import discogs_prompt
from personal_metrics.storage.documents import DocumentStore
from personal_metrics.transformers.discogs import release_media_references, transform_release

logger = get_logger(__name__)


class DiscogsSyncJob(SyncJob):
    provider = "discogs"

    def __init__(
        self,
        *,
        discogs: DiscogsClient,
        documents: DocumentStore,
        media: MediaSyncHelper,
        summarizer: SummaryProvider | None = None,
        public_base_url: str = "",
        profile_url: str = "",
        batch_concurrency: int = 2,
        batch_delay_ms: int = 1000,
    ) -> None:
        super().__init__(documents=documents, media=media, summarizer=summarizer)
        self._discogs = discogs
        self._public_base_url = public_base_url
        self._profile_url = profile_url
        self._batch_concurrency = batch_concurrency
        self._batch_delay_ms = batch_delay_ms

    async def fetch(self, context: SyncContext) -> None:
        response = await self._discogs.fetch_releases()
        context.fetched["response"] = response
        context.fetched["releases"] = list(response["releases"])
        logger.info("Starting Discogs sync for %d releases", len(response["releases"]))

    async def enrich(self, context: SyncContext) -> None:
        context.fetched["releases"] = await self._discogs.fetch_releases_batch(
            context.fetched["releases"],
            concurrency=self._batch_concurrency,
            delay_ms=self._batch_delay_ms,
            stop_on_error=False,
        )

    async def upload_media(self, context: SyncContext) -> None:
        references = [
            reference
            for release in context.fetched["releases"]
            for reference in release_media_references(release)
        ]
        context.uploads.extend(await self._media.sync(references, context.stored_keys))

    def build_document(self, context: SyncContext) -> dict[str, Any]:
        pagination = context.fetched["response"].get("pagination") or {}
        releases = [
            transform_release(release, public_base_url=self._public_base_url)
            for release in context.fetched["releases"]
        ]
        return {
            "collections": {"releases": releases},
            "metrics": {"LPs Owned": pagination.get("items", len(releases))},
            "profile": {"profileURL": self._profile_url},
        }

    def raw_documents(self, context: SyncContext) -> dict[str, dict[str, Any]]:
        return {
            "last-response": {
                **context.fetched["response"],
                "releases": context.fetched["releases"],
            },
        }

    def summary_prompt(self, document: dict[str, Any]) -> str | None:
        return discogs_prompt(document)

    def envelope_extras(self, context: SyncContext) -> dict[str, Any]:
        uploaded = context.uploaded_keys()
        return {
            "destinationBucket": self._media.bucket,
            "totalUploadedCount": len(uploaded),
            "uploadedFiles": uploaded,
        }


__all__ = ["DiscogsSyncJob"]
