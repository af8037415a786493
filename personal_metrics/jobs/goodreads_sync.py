"""Goodreads sync: profile, recent activity and the recently read shelf.

Books on the read shelf are resolved through Google Books, which has far
better metadata and cover art than Goodreads. Status updates and reviews are
then correlated against those books, falling back to fresh Google Books
lookups for titles that are not on the shelf.
"""

from __future__ import annotations

import asyncio
from typing import Any

from personal_metrics.integrations.contracts import SummaryProvider
from personal_metrics.integrations.goodreads_client import GoodreadsClient
from personal_metrics.integrations.google_books_client import GoogleBooksClient
from personal_metrics.jobs.base import SyncContext, SyncJob
from personal_metrics.logging import get_logger
from personal_metrics.services.enrichment import DEFAULT_LOOKUP_DELAY_MS, EnrichmentCorrelator
from personal_metrics.services.media_sync import MediaSyncHelper
from personal_metrics.services.summaries import goodreads_prompt
from personal_metrics.storage.documents import DocumentStore
from personal_metrics.transformers.books import (
    book_media_reference,
    book_media_references,
    transform_volume,
)
from personal_metrics.transformers.goodreads import shelf_entries
from personal_metrics.utils.concurrency import bounded_map, split_results

logger = get_logger(__name__)


class GoodreadsSyncJob(SyncJob):
    provider = "goodreads"

    def __init__(
        self,
        *,
        goodreads: GoodreadsClient,
        google_books: GoogleBooksClient,
        documents: DocumentStore,
        media: MediaSyncHelper,
        summarizer: SummaryProvider | None = None,
        public_base_url: str = "",
        lookup_delay_ms: int = DEFAULT_LOOKUP_DELAY_MS,
    ) -> None:
        super().__init__(documents=documents, media=media, summarizer=summarizer)
        self._goodreads = goodreads
        self._google_books = google_books
        self._public_base_url = public_base_url
        self._lookup_delay_ms = lookup_delay_ms
        self._correlator = EnrichmentCorrelator(
            fetch_by_key=google_books.fetch_by_isbn,
            search_by_title_author=google_books.search_by_title_author,
            build_record=self._to_book,
            media_reference=book_media_reference,
            media_helper=media,
            delay_ms=lookup_delay_ms,
        )

    def _to_book(self, volume: Any, rating: Any = None) -> dict[str, Any] | None:
        return transform_volume(volume, rating=rating, public_base_url=self._public_base_url)

    async def fetch_recently_read(self) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        """Return ``(books, raw_reviews)`` for the read shelf.

        Google Books lookups run one at a time; books that cannot be found are
        left out.
        """

        reviews = await self._goodreads.fetch_read_shelf()
        entries = shelf_entries(reviews)

        async def _lookup(entry: dict[str, Any]) -> dict[str, Any] | None:
            volume = await self._google_books.fetch_by_isbn(entry["isbn"])
            if volume is None:
                return None
            return self._to_book(volume, entry.get("rating"))

        results = await bounded_map(
            entries,
            _lookup,
            concurrency=1,
            delay_ms=self._lookup_delay_ms,
            stop_on_error=False,
        )
        found, failures = split_results(results)
        for failure in failures:
            logger.warning("Skipping shelf book after lookup failure: %s", failure)
        books = [book for book in found if book is not None]
        return books, reviews

    async def fetch(self, context: SyncContext) -> None:
        user, (books, reviews) = await asyncio.gather(
            self._goodreads.fetch_user(), self.fetch_recently_read()
        )
        context.fetched.update(
            {
                "raw_user": user.raw,
                "profile": user.profile,
                "updates": user.updates,
                "recently_read": books,
                "raw_reviews": reviews,
            }
        )

    async def enrich(self, context: SyncContext) -> None:
        result = await self._correlator.correlate(
            context.fetched["updates"],
            context.fetched["recently_read"],
            stored_keys=context.stored_keys,
        )
        context.fetched["updates"] = result.items
        context.uploads.extend(result.uploads)

    async def upload_media(self, context: SyncContext) -> None:
        already_stored = context.stored_keys | set(context.uploaded_keys())
        references = book_media_references(context.fetched["recently_read"])
        context.uploads.extend(await self._media.sync(references, already_stored))

    def build_document(self, context: SyncContext) -> dict[str, Any]:
        profile = context.fetched["profile"]
        return {
            "collections": {
                "recentlyReadBooks": context.fetched["recently_read"],
                "updates": context.fetched["updates"],
            },
            "profile": profile,
            "metrics": {"Books Read": profile.get("readCount") or 0},
        }

    def raw_documents(self, context: SyncContext) -> dict[str, dict[str, Any]]:
        return {
            "last-response_user-show": {"response": context.fetched["raw_user"]},
            "last-response_book-reviews": {"response": context.fetched["raw_reviews"]},
        }

    def summary_prompt(self, document: dict[str, Any]) -> str | None:
        return goodreads_prompt(document)


__all__ = ["GoodreadsSyncJob"]
