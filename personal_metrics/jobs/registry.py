"""Map provider names to fully wired sync jobs."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import httpx

from personal_metrics.config import AppConfig, load_config
from personal_metrics.integrations.contracts import SummaryProvider
from personal_metrics.integrations.discogs_client import DiscogsClient
from personal_metrics.integrations.gemini_client import GeminiSummaryClient
from personal_metrics.integrations.goodreads_client import GoodreadsClient
from personal_metrics.integrations.google_books_client import GoogleBooksClient
from personal_metrics.jobs.base import SyncJob, SyncResultEnvelope
from personal_metrics.jobs.discogs_sync import DiscogsSyncJob
from personal_metrics.jobs.goodreads_sync import GoodreadsSyncJob
from personal_metrics.services.media_sync import MediaSyncHelper
from personal_metrics.storage.documents import DocumentStore, SqlDocumentStore
from personal_metrics.storage.media import LocalMediaStore


class UnknownProviderError(ValueError):
    def __init__(self, provider: str) -> None:
        super().__init__(f"Unknown sync provider: {provider}")
        self.provider = provider


@dataclass(slots=True)
class SyncDependencies:
    documents: DocumentStore
    media: MediaSyncHelper
    summarizer: SummaryProvider | None = None
    transport: httpx.AsyncBaseTransport | None = None


def build_dependencies(config: AppConfig) -> SyncDependencies:
    store = LocalMediaStore(config.media.root, config.media.bucket)
    media = MediaSyncHelper(
        store,
        concurrency=config.media.upload_concurrency,
        download_timeout=config.media.download_timeout,
        max_bytes=config.media.max_bytes,
    )
    return SyncDependencies(
        documents=SqlDocumentStore(),
        media=media,
        summarizer=GeminiSummaryClient.from_config(config.gemini),
    )


def _goodreads_job(config: AppConfig, deps: SyncDependencies) -> SyncJob:
    return GoodreadsSyncJob(
        goodreads=GoodreadsClient.from_config(config.goodreads, transport=deps.transport),
        google_books=GoogleBooksClient.from_config(config.google_books, transport=deps.transport),
        documents=deps.documents,
        media=deps.media,
        summarizer=deps.summarizer,
        public_base_url=config.media.public_base_url,
        lookup_delay_ms=config.google_books.request_delay_ms,
    )


def _discogs_job(config: AppConfig, deps: SyncDependencies) -> SyncJob:
    return DiscogsSyncJob(
        discogs=DiscogsClient.from_config(config.discogs, transport=deps.transport),
        documents=deps.documents,
        media=deps.media,
        summarizer=deps.summarizer,
        public_base_url=config.media.public_base_url,
        profile_url=config.discogs.profile_url,
        batch_concurrency=config.discogs.batch_concurrency,
        batch_delay_ms=config.discogs.batch_delay_ms,
    )


_FACTORIES: dict[str, Callable[[AppConfig, SyncDependencies], SyncJob]] = {
    "discogs": _discogs_job,
    "goodreads": _goodreads_job,
}

SYNC_PROVIDERS: tuple[str, ...] = tuple(sorted(_FACTORIES))


def build_sync_job(
    provider: str,
    config: AppConfig | None = None,
    dependencies: SyncDependencies | None = None,
) -> SyncJob:
    factory = _FACTORIES.get(provider.strip().lower())
    if factory is None:
        raise UnknownProviderError(provider)
    resolved = config or load_config()
    return factory(resolved, dependencies or build_dependencies(resolved))


async def run_sync(
    provider: str,
    config: AppConfig | None = None,
    dependencies: SyncDependencies | None = None,
) -> SyncResultEnvelope:
    job = build_sync_job(provider, config, dependencies)
    return await job.run()


__all__ = [
    "SYNC_PROVIDERS",
    "SyncDependencies",
    "UnknownProviderError",
    "build_dependencies",
    "build_sync_job",
    "run_sync",
]
