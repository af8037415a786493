"""Prompt builders and the best-effort wrapper for widget summaries."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
import json
import logging
from typing import Any, TypeVar

from personal_metrics.logging import get_logger
from personal_metrics.logging_events import log_event

logger = get_logger(__name__)

T = TypeVar("T")

_RESPONSE_CONTRACT = """
Use this structure:
{
  "response": "<2-3 paragraphs in limited HTML with a third-person summary>",
  "debug": {}
}

Instructions:
- Respond in HTML with each paragraph in a <p> tag
- Do not wrap the response in a container tag
- Basic formatting such as <b>, <i>, <strong> and <em> is welcome
- Do not use hyperlinks
- Return only valid JSON, no markdown or extra text
"""


async def run_optional(
    fn: Callable[[], Awaitable[T]], *, name: str = "optional", provider: str | None = None
) -> T | None:
    """Await ``fn`` and return its result, or ``None`` if it raised.

    Failures are logged and never propagate.
    """

    try:
        return await fn()
    except Exception as exc:
        log_event(
            logger,
            f"sync.{provider or 'unknown'}.{name}",
            level=logging.WARNING,
            component="services.summaries",
            status="skipped",
            error=type(exc).__name__,
            meta={"message": str(exc)},
        )
        return None


def goodreads_prompt(document: Mapping[str, Any]) -> str:
    collections = document.get("collections") or {}
    profile = document.get("profile") or {}
    books = [
        {
            "title": book.get("title"),
            "authors": book.get("authors") or [],
            "rating": book.get("rating"),
            "categories": book.get("categories") or [],
            "pageCount": book.get("pageCount"),
        }
        for book in collections.get("recentlyReadBooks") or []
        if isinstance(book, Mapping)
    ]
    reader = profile.get("name") or "the reader"
    return (
        "Please analyze the following Goodreads reading data and return a "
        "natural-sounding summary in valid JSON.\n"
        f"{_RESPONSE_CONTRACT}"
        "- Mention recent books, genre preferences or reading patterns, and standout titles\n"
        "- Do not repeat exact ratings unless particularly noteworthy\n"
        f"\nGoodreads profile: {reader}\n"
        f"recentlyReadBooks: {json.dumps(books, ensure_ascii=False)}\n"
    )


def discogs_prompt(document: Mapping[str, Any]) -> str:
    collections = document.get("collections") or {}
    metrics = document.get("metrics") or {}
    releases = []
    for release in collections.get("releases") or []:
        info = release.get("basicInformation") if isinstance(release, Mapping) else None
        if not isinstance(info, Mapping):
            continue
        releases.append(
            {
                "title": info.get("title"),
                "year": info.get("year"),
                "artists": [
                    artist.get("name")
                    for artist in info.get("artists") or []
                    if isinstance(artist, Mapping)
                ],
                "genres": info.get("genres") or [],
                "styles": info.get("styles") or [],
            }
        )
    return (
        "Please analyze the following Discogs vinyl collection and return a "
        "natural-sounding summary in valid JSON.\n"
        f"{_RESPONSE_CONTRACT}"
        "- Mention favourite genres, eras and notable records\n"
        f"\nMetrics: {json.dumps(dict(metrics), ensure_ascii=False)}\n"
        f"releases: {json.dumps(releases, ensure_ascii=False)}\n"
    )


__all__ = ["discogs_prompt", "goodreads_prompt", "run_optional"]
