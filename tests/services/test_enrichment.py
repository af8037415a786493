from collections.abc import Mapping
from typing import Any

import pytest

from personal_metrics.services.enrichment import (
    EnrichmentCorrelator,
    EnrichmentGroup,
    EnrichmentOutcome,
    ItemFields,
    enrichment_key,
)
from personal_metrics.services.media_sync import MediaSyncHelper
from personal_metrics.transformers.books import book_media_reference, transform_volume
from tests.helpers import RecordingMediaStore, image_transport, make_volume


class _Lookups:
    def __init__(
        self,
        *,
        by_isbn: Mapping[str, Mapping[str, Any]] | None = None,
        by_title: Mapping[str, Mapping[str, Any]] | None = None,
        failing_titles: set[str] | None = None,
    ) -> None:
        self.by_isbn = dict(by_isbn or {})
        self.by_title = dict(by_title or {})
        self.failing_titles = set(failing_titles or ())
        self.isbn_calls: list[str] = []
        self.title_calls: list[tuple[str, str | None]] = []

    async def fetch_by_isbn(self, isbn: str) -> Mapping[str, Any] | None:
        self.isbn_calls.append(isbn)
        return self.by_isbn.get(isbn)

    async def search(self, title: str, author: str | None = None) -> Mapping[str, Any] | None:
        self.title_calls.append((title, author))
        if title in self.failing_titles:
            raise RuntimeError(f"lookup for {title} failed")
        return self.by_title.get(title)


def _to_book(volume: Mapping[str, Any]) -> dict[str, Any] | None:
    return transform_volume(volume, public_base_url="https://cdn.example.com/")


def _correlator(lookups: _Lookups, media: MediaSyncHelper | None = None) -> EnrichmentCorrelator:
    return EnrichmentCorrelator(
        fetch_by_key=lookups.fetch_by_isbn,
        search_by_title_author=lookups.search,
        build_record=_to_book,
        media_reference=book_media_reference,
        media_helper=media,
        delay_ms=0,
    )


def _status(title: str, *, isbn13: str | None = None, author: str | None = None, link: str | None = None) -> dict[str, Any]:
    return {
        "type": "userstatus",
        "link": link,
        "book": {"title": title, "isbn13": isbn13, "author": {"name": author}},
    }


@pytest.mark.asyncio
async def test_direct_match_ignores_dashes_and_skips_lookups() -> None:
    shelf_book = _to_book(make_volume("vol-1", "The Overstory", isbn13="9780143127550"))
    lookups = _Lookups()
    correlator = _correlator(lookups)

    result = await correlator.correlate(
        [_status("The Overstory", isbn13="978-0-14-312755-0")], [shelf_book]
    )

    assert lookups.isbn_calls == []
    assert lookups.title_calls == []
    assert result.direct_matches == 1
    [item] = result.items
    assert item["book"]["cdnMediaURL"] == "https://cdn.example.com/books/vol-1-thumbnail.jpg"
    assert item["book"]["googleBooksID"] == "vol-1"
    assert item["book"]["mediaDestinationPath"] == "books/vol-1-thumbnail.jpg"


@pytest.mark.asyncio
async def test_duplicate_titles_trigger_a_single_lookup_and_share_media() -> None:
    lookups = _Lookups(
        by_title={"Piranesi": make_volume("vol-p", "Piranesi", authors=["Susanna Clarke"])}
    )
    correlator = _correlator(lookups)
    first = _status("Piranesi", author="Susanna Clarke", link="https://gr/1")
    second = _status("Piranesi", author="Susanna Clarke", link="https://gr/2")

    result = await correlator.correlate([first, second], [])

    assert lookups.title_calls == [("Piranesi", "Susanna Clarke")]
    assert result.lookups == 1
    assert result.enriched == 2
    urls = {item["book"]["cdnMediaURL"] for item in result.items}
    assert urls == {"https://cdn.example.com/books/vol-p-thumbnail.jpg"}


@pytest.mark.asyncio
async def test_isbn_lookup_falls_back_to_title_search() -> None:
    lookups = _Lookups(
        by_title={"Dune": make_volume("vol-d", "Dune", authors=["Frank Herbert"])}
    )
    correlator = _correlator(lookups)

    result = await correlator.correlate(
        [_status("Dune", isbn13="978-0-441-17271-9", author="Frank Herbert")], []
    )

    assert lookups.isbn_calls == ["9780441172719"]
    assert lookups.title_calls == [("Dune", "Frank Herbert")]
    assert result.items[0]["book"]["googleBooksID"] == "vol-d"


@pytest.mark.asyncio
async def test_failed_and_missing_lookups_leave_items_unenriched() -> None:
    lookups = _Lookups(
        by_title={"Found": make_volume("vol-f", "Found")},
        failing_titles={"Broken"},
    )
    correlator = _correlator(lookups)
    items = [_status("Broken"), _status("Unknown"), _status("Found"), {"type": "userstatus"}]

    result = await correlator.correlate(items, [])

    assert len(result.items) == 4
    assert "cdnMediaURL" not in result.items[0]["book"]
    assert "cdnMediaURL" not in result.items[1]["book"]
    assert result.items[2]["book"]["googleBooksID"] == "vol-f"
    assert result.items[3] == {"type": "userstatus"}
    assert result.enriched == 1


@pytest.mark.asyncio
async def test_records_without_media_are_not_attached() -> None:
    lookups = _Lookups(by_title={"Bare": make_volume("vol-b", "Bare", with_image=False)})

    result = await _correlator(lookups).correlate([_status("Bare")], [])

    assert "cdnMediaURL" not in result.items[0]["book"]
    assert result.enriched == 0


@pytest.mark.asyncio
async def test_new_media_is_uploaded_once_per_record() -> None:
    store = RecordingMediaStore(keys={"books/vol-old-thumbnail.jpg"})
    media = MediaSyncHelper(store, transport=image_transport())
    lookups = _Lookups(
        by_title={
            "Old": make_volume("vol-old", "Old"),
            "New": make_volume("vol-new", "New"),
        }
    )

    result = await _correlator(lookups, media).correlate(
        [_status("Old"), _status("New"), _status("new")],
        [],
        stored_keys=frozenset(store.keys),
    )

    assert store.uploads == ["books/vol-new-thumbnail.jpg"]
    assert [upload.key for upload in result.uploads] == ["books/vol-new-thumbnail.jpg"]
    assert result.enriched == 3


def test_enrichment_key_prefers_isbn_then_title() -> None:
    fields = ItemFields()

    assert enrichment_key(_status("Dune", isbn13="978-0-441-17271-9"), fields) == "isbn:9780441172719"
    assert enrichment_key(_status("  The   Overstory "), fields) == "title:the overstory"
    assert enrichment_key({"book": {}}, fields) is None


def test_match_strategies_are_tried_in_fixed_order() -> None:
    correlator = _correlator(_Lookups())
    item = _status("The Overstory", isbn13="9780143127550", link="https://gr/1")
    record = _to_book(make_volume("vol-1", "The Overstory", isbn13="9780143127550"))
    group = EnrichmentGroup(key="isbn:9780143127550", isbn="9780143127550", title="The Overstory", author=None, items=[item])

    strategies = correlator.match_strategies([EnrichmentOutcome(group=group, record=record)])

    assert [name for name, _lookup in strategies] == ["identity", "link", "isbn", "title"]
    lookups = dict(strategies)
    assert lookups["identity"](item) is record
    assert lookups["identity"](dict(item)) is None
    assert lookups["link"]({"link": "https://gr/1"}) is record
    assert lookups["isbn"]({"book": {"isbn13": "978-0-14-312755-0"}}) is record
    assert lookups["title"]({"book": {"title": "the overstory"}}) is record
