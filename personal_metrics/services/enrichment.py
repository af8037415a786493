"""Correlate primary activity items with enrichment records.

Primary items (Goodreads status updates, reviews) reference a book by ISBN,
title and author. The correlator attaches cover media to each of them:

1. Direct match against records that were already fetched, by ISBN with and
   without dashes. No network access.
2. The remaining items are grouped by enrichment key (ISBN, else normalized
   title) and one lookup per group is issued, strictly one at a time with a
   fixed delay between dispatches.
3. Media for newly found records is copied into the media store.
4. Found records are merged back onto the unresolved items by trying, in
   order, object identity, unique link, ISBN and normalized title.

No single lookup, upload or parsing failure aborts the correlation; the result
always has one entry per input item.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Collection, Mapping, Sequence
from dataclasses import dataclass, field
import logging
from typing import Any

from personal_metrics.logging import get_logger
from personal_metrics.logging_events import log_event
from personal_metrics.services.media_sync import MediaReference, MediaSyncHelper, UploadResult
from personal_metrics.utils.concurrency import bounded_map
from personal_metrics.utils.normalize import (
    first_present,
    isbn_variants,
    normalize_title,
    preferred_isbn,
)

logger = get_logger(__name__)

DEFAULT_LOOKUP_DELAY_MS = 200

Item = Mapping[str, Any]
Record = dict[str, Any]
FetchByKey = Callable[[str], Awaitable[Mapping[str, Any] | None]]
SearchByTitleAuthor = Callable[[str, str | None], Awaitable[Mapping[str, Any] | None]]
BuildRecord = Callable[[Mapping[str, Any]], Record | None]
MediaReferenceFactory = Callable[[Mapping[str, Any]], MediaReference | None]
MatchLookup = Callable[[Item], Record | None]
MatchStrategy = tuple[str, MatchLookup]

KeyPaths = tuple[tuple[str, ...], ...]


@dataclass(frozen=True, slots=True)
class ItemFields:
    """Where the book reference lives on a primary item, in priority order."""

    isbn_paths: KeyPaths = (("book", "isbn13"), ("book", "isbn"), ("book", "isbn10"))
    title_paths: KeyPaths = (("book", "title"),)
    author_paths: KeyPaths = (
        ("book", "author", "name"),
        ("book", "author", "displayName"),
        ("book", "author", "sortName"),
    )
    link_paths: KeyPaths = (("link",),)


@dataclass(slots=True)
class EnrichmentGroup:
    key: str
    isbn: str | None
    title: str | None
    author: str | None
    items: list[Item] = field(default_factory=list)


@dataclass(slots=True)
class EnrichmentOutcome:
    group: EnrichmentGroup
    record: Record


@dataclass(slots=True)
class CorrelationResult:
    items: list[Item]
    direct_matches: int = 0
    enriched: int = 0
    lookups: int = 0
    uploads: list[UploadResult] = field(default_factory=list)


def item_isbns(item: Item, fields: ItemFields) -> list[str]:
    return isbn_variants(*(first_present(item, [path]) for path in fields.isbn_paths))


def item_title(item: Item, fields: ItemFields) -> str | None:
    value = first_present(item, fields.title_paths)
    return value if isinstance(value, str) else None


def item_author(item: Item, fields: ItemFields) -> str | None:
    value = first_present(item, fields.author_paths)
    return value if isinstance(value, str) else None


def item_link(item: Item, fields: ItemFields) -> str | None:
    value = first_present(item, fields.link_paths)
    return value if isinstance(value, str) else None


def record_isbns(record: Mapping[str, Any]) -> list[str]:
    return isbn_variants(record.get("isbn13"), record.get("isbn10"), record.get("isbn"))


def enrichment_key(item: Item, fields: ItemFields) -> str | None:
    """Return the deduplication key for ``item``: its ISBN, else its title."""

    isbn = preferred_isbn(*(first_present(item, [path]) for path in fields.isbn_paths))
    if isbn:
        return f"isbn:{isbn}"
    title = normalize_title(item_title(item, fields))
    if title:
        return f"title:{title}"
    return None


def has_media(record: Mapping[str, Any] | None) -> bool:
    return bool(record) and bool(record.get("cdnMediaURL"))


def attach_media(item: Item, record: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``item`` whose book carries the record's media."""

    book = item.get("book")
    enriched_book = dict(book) if isinstance(book, Mapping) else {}
    enriched_book.update(
        {
            "cdnMediaURL": record.get("cdnMediaURL"),
            "mediaDestinationPath": record.get("mediaDestinationPath"),
            "thumbnail": record.get("thumbnail") or record.get("smallThumbnail"),
            "googleBooksID": record.get("id"),
        }
    )
    return {**item, "book": enriched_book}


def build_isbn_index(records: Sequence[Mapping[str, Any]]) -> dict[str, Mapping[str, Any]]:
    index: dict[str, Mapping[str, Any]] = {}
    for record in records:
        if not isinstance(record, Mapping):
            continue
        for variant in record_isbns(record):
            index.setdefault(variant, record)
    return index


class EnrichmentCorrelator:
    def __init__(
        self,
        *,
        fetch_by_key: FetchByKey,
        search_by_title_author: SearchByTitleAuthor,
        build_record: BuildRecord,
        media_reference: MediaReferenceFactory,
        media_helper: MediaSyncHelper | None = None,
        fields: ItemFields | None = None,
        delay_ms: int = DEFAULT_LOOKUP_DELAY_MS,
    ) -> None:
        self._fetch_by_key = fetch_by_key
        self._search_by_title_author = search_by_title_author
        self._build_record = build_record
        self._media_reference = media_reference
        self._media_helper = media_helper
        self._fields = fields or ItemFields()
        self._delay_ms = max(0, int(delay_ms))

    async def correlate(
        self,
        primary_items: Sequence[Item],
        secondary_records: Sequence[Mapping[str, Any]],
        *,
        stored_keys: Collection[str] = frozenset(),
    ) -> CorrelationResult:
        items: list[Item] = list(primary_items)
        unresolved = self.direct_match(items, secondary_records)
        result = CorrelationResult(items=items, direct_matches=len(primary_items) - len(unresolved))

        groups = self.group_unresolved([items[index] for index in unresolved])
        outcomes = await self.enrich_groups(groups)
        result.lookups = len(groups)

        result.uploads = await self._upload_media(outcomes, stored_keys)

        strategies = self.match_strategies(outcomes)
        for index in unresolved:
            item = items[index]
            for _name, lookup in strategies:
                record = lookup(item)
                if record is not None:
                    items[index] = attach_media(item, record)
                    result.enriched += 1
                    break

        log_event(
            logger,
            "enrichment.correlate",
            component="services.enrichment",
            status="ok" if result.direct_matches + result.enriched == len(items) else "partial",
            items=len(items),
            direct_matches=result.direct_matches,
            lookups=result.lookups,
            enriched=result.enriched,
            uploaded=sum(1 for upload in result.uploads if upload.ok),
        )
        return result

    def direct_match(
        self, items: list[Item], secondary_records: Sequence[Mapping[str, Any]]
    ) -> list[int]:
        """Attach media from already fetched records in place.

        Returns the indexes of items that still need enrichment.
        """

        index = build_isbn_index(secondary_records)
        unresolved: list[int] = []
        for position, item in enumerate(items):
            match = next(
                (index[key] for key in item_isbns(item, self._fields) if key in index), None
            )
            if has_media(match):
                items[position] = attach_media(item, match)
            else:
                unresolved.append(position)
        return unresolved

    def group_unresolved(self, items: Sequence[Item]) -> list[EnrichmentGroup]:
        """Group items by enrichment key so each key is looked up once."""

        groups: dict[str, EnrichmentGroup] = {}
        for item in items:
            key = enrichment_key(item, self._fields)
            if key is None:
                continue
            group = groups.get(key)
            if group is None:
                group = EnrichmentGroup(
                    key=key,
                    isbn=preferred_isbn(*item_isbns(item, self._fields)),
                    title=item_title(item, self._fields),
                    author=item_author(item, self._fields),
                )
                groups[key] = group
            group.items.append(item)
        return list(groups.values())

    async def enrich_groups(self, groups: Sequence[EnrichmentGroup]) -> list[EnrichmentOutcome]:
        results = await bounded_map(
            groups,
            self._enrich_group,
            concurrency=1,
            delay_ms=self._delay_ms,
            stop_on_error=False,
        )
        outcomes: list[EnrichmentOutcome] = []
        for group, outcome in zip(groups, results):
            if isinstance(outcome, BaseException):
                logger.warning("Enrichment for %s failed: %s", group.key, outcome)
                continue
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes

    async def _enrich_group(self, group: EnrichmentGroup) -> EnrichmentOutcome | None:
        try:
            found = None
            if group.isbn:
                found = await self._fetch_by_key(group.isbn)
            if found is None and group.title:
                found = await self._search_by_title_author(group.title, group.author)
            record = self._build_record(found) if found is not None else None
        except Exception as exc:
            log_event(
                logger,
                "enrichment.lookup",
                level=logging.WARNING,
                component="services.enrichment",
                status="error",
                key=group.key,
                error=type(exc).__name__,
                meta={"message": str(exc)},
            )
            return None

        if record is None:
            log_event(
                logger,
                "enrichment.lookup",
                level=logging.INFO,
                component="services.enrichment",
                status="not_found",
                key=group.key,
                items=len(group.items),
            )
            return None
        return EnrichmentOutcome(group=group, record=record)

    async def _upload_media(
        self, outcomes: Sequence[EnrichmentOutcome], stored_keys: Collection[str]
    ) -> list[UploadResult]:
        if self._media_helper is None or not outcomes:
            return []
        references = (self._media_reference(outcome.record) for outcome in outcomes)
        return await self._media_helper.sync(
            [reference for reference in references if reference is not None], stored_keys
        )

    def match_strategies(self, outcomes: Sequence[EnrichmentOutcome]) -> list[MatchStrategy]:
        """Return the ordered ``(name, lookup)`` pairs used to re-merge outcomes."""

        by_identity: dict[int, Record] = {}
        by_link: dict[str, Record] = {}
        by_isbn: dict[str, Record] = {}
        by_title: dict[str, Record] = {}

        for outcome in outcomes:
            record = outcome.record
            if not has_media(record):
                continue
            for variant in record_isbns(record):
                by_isbn.setdefault(variant, record)
            title = normalize_title(record.get("title"))
            if title:
                by_title.setdefault(title, record)
            for item in outcome.group.items:
                by_identity[id(item)] = record
                link = item_link(item, self._fields)
                if link:
                    by_link.setdefault(link, record)
                for variant in item_isbns(item, self._fields):
                    by_isbn.setdefault(variant, record)
                item_key = normalize_title(item_title(item, self._fields))
                if item_key:
                    by_title.setdefault(item_key, record)

        fields = self._fields

        def _by_link(item: Item) -> Record | None:
            link = item_link(item, fields)
            return by_link.get(link) if link else None

        def _by_isbn(item: Item) -> Record | None:
            return next(
                (by_isbn[key] for key in item_isbns(item, fields) if key in by_isbn), None
            )

        def _by_title(item: Item) -> Record | None:
            title = normalize_title(item_title(item, fields))
            return by_title.get(title) if title else None

        return [
            ("identity", lambda item: by_identity.get(id(item))),
            ("link", _by_link),
            ("isbn", _by_isbn),
            ("title", _by_title),
        ]


__all__ = [
    "CorrelationResult",
    "EnrichmentCorrelator",
    "EnrichmentGroup",
    "EnrichmentOutcome",
    "ItemFields",
    "attach_media",
    "enrichment_key",
]
