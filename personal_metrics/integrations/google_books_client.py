"""Google Books volume lookups used to enrich reading activity."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any

import httpx

from personal_metrics.config import GoogleBooksConfig
from personal_metrics.integrations.contracts import ProviderError, ProviderInvalidInputError
from personal_metrics.integrations.http import UpstreamHttpClient
from personal_metrics.logging import get_logger
from personal_metrics.logging_events import log_event
from personal_metrics.utils.normalize import strip_isbn
from personal_metrics.utils.retry import RetryDecision, retry_async

logger = get_logger(__name__)

PROVIDER = "google_books"


class GoogleBooksClient:
    """Look up single volumes by ISBN or by title and author.

    Both lookups return the first matching volume or ``None``. Rate limits are
    retried with exponential backoff; once the retry policy gives up the failure
    is logged and ``None`` is returned so enrichment can continue.
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str,
        timeout: float = 10.0,
        max_attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._max_attempts = max(1, int(max_attempts))
        self._http = UpstreamHttpClient(
            provider=PROVIDER,
            base_url=base_url,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: GoogleBooksConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "GoogleBooksClient":
        return cls(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_attempts=config.max_attempts,
            transport=transport,
        )

    async def fetch_by_isbn(self, isbn: str | None) -> Mapping[str, Any] | None:
        stripped = strip_isbn(isbn)
        if not stripped:
            raise ProviderInvalidInputError(PROVIDER, "An ISBN is required to fetch a book")
        return await self._first_volume(f"isbn:{stripped}", lookup="isbn")

    async def search_by_title_author(
        self, title: str | None, author: str | None = None
    ) -> Mapping[str, Any] | None:
        title_text = (title or "").strip()
        if not title_text:
            raise ProviderInvalidInputError(PROVIDER, "A title is required to search for a book")
        author_text = (author or "").strip()
        if author_text:
            query = f"intitle:{title_text} inauthor:{author_text}"
        else:
            query = f"intitle:{title_text}"
        return await self._first_volume(query, lookup="search")

    async def _first_volume(self, query: str, *, lookup: str) -> Mapping[str, Any] | None:
        params = {"q": query, "key": self._api_key, "maxResults": 1}

        def _on_retry(exc: Exception, attempt: int, decision: RetryDecision) -> None:
            log_event(
                logger,
                "google_books.lookup.retry",
                level=logging.WARNING,
                component="integrations.google_books",
                status="retrying",
                lookup=lookup,
                attempt=attempt,
                delay_ms=decision.delay_ms,
                status_code=getattr(exc, "status_code", None),
            )

        try:
            payload = await retry_async(
                lambda: self._http.get_json("/volumes", params=params),
                max_attempts=self._max_attempts,
                on_retry=_on_retry,
            )
        except ProviderError as exc:
            log_event(
                logger,
                "google_books.lookup",
                level=logging.WARNING,
                component="integrations.google_books",
                status="error",
                lookup=lookup,
                error=type(exc).__name__,
                status_code=exc.status_code,
                meta={"query": query, "message": exc.message},
            )
            return None

        items = payload.get("items") if isinstance(payload, Mapping) else None
        if not isinstance(items, list) or not items:
            log_event(
                logger,
                "google_books.lookup",
                level=logging.DEBUG,
                component="integrations.google_books",
                status="not_found",
                lookup=lookup,
                meta={"query": query},
            )
            return None
        first = items[0]
        return first if isinstance(first, Mapping) else None


__all__ = ["GoogleBooksClient", "PROVIDER"]
