"""Transform Google Books volumes into widget book records."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from personal_metrics.services.media_sync import MediaReference
from personal_metrics.utils.normalize import first_present, to_https

BOOK_MEDIA_PREFIX = "books"


def book_destination_key(volume_id: str) -> str:
    return f"{BOOK_MEDIA_PREFIX}/{volume_id}-thumbnail.jpg"


def public_media_url(public_base_url: str, key: str) -> str:
    base = public_base_url if public_base_url.endswith("/") else f"{public_base_url}/"
    return f"{base}{key}"


def _industry_identifiers(volume_info: Mapping[str, Any]) -> dict[str, str]:
    identifiers: dict[str, str] = {}
    raw = volume_info.get("industryIdentifiers")
    if not isinstance(raw, list):
        return identifiers
    for entry in raw:
        if not isinstance(entry, Mapping):
            continue
        kind = entry.get("type")
        value = entry.get("identifier")
        if isinstance(kind, str) and isinstance(value, str) and kind not in identifiers:
            identifiers[kind] = value
    return identifiers


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def transform_volume(
    volume: Mapping[str, Any],
    *,
    rating: Any = None,
    public_base_url: str = "",
) -> dict[str, Any] | None:
    """Return the widget book record for ``volume`` or ``None`` without an id."""

    volume_id = volume.get("id")
    if not isinstance(volume_id, str) or not volume_id:
        return None
    info = volume.get("volumeInfo")
    if not isinstance(info, Mapping):
        info = {}

    identifiers = _industry_identifiers(info)
    isbn13 = identifiers.get("ISBN_13")
    isbn10 = identifiers.get("ISBN_10")
    thumbnail = to_https(first_present(info, [("imageLinks", "thumbnail")]))
    small_thumbnail = to_https(first_present(info, [("imageLinks", "smallThumbnail")]))

    destination: str | None = None
    cdn_url: str | None = None
    if thumbnail or small_thumbnail:
        destination = book_destination_key(volume_id)
        cdn_url = public_media_url(public_base_url, destination)

    return {
        "id": volume_id,
        "isbn": isbn13 or isbn10,
        "isbn10": isbn10,
        "isbn13": isbn13,
        "title": info.get("title"),
        "subtitle": info.get("subtitle"),
        "authors": _string_list(info.get("authors")),
        "categories": _string_list(info.get("categories")),
        "pageCount": info.get("pageCount"),
        "infoLink": to_https(info.get("infoLink")),
        "previewLink": to_https(info.get("previewLink")),
        "rating": rating,
        "thumbnail": thumbnail,
        "smallThumbnail": small_thumbnail,
        "mediaDestinationPath": destination,
        "cdnMediaURL": cdn_url,
    }


def book_media_reference(book: Mapping[str, Any]) -> MediaReference | None:
    destination = book.get("mediaDestinationPath")
    source = book.get("thumbnail") or book.get("smallThumbnail")
    if not destination or not source:
        return None
    return MediaReference(destination_key=destination, source_url=source, logical_id=book.get("id"))


def book_media_references(books: list[Mapping[str, Any]]) -> list[MediaReference]:
    references = (book_media_reference(book) for book in books)
    return [reference for reference in references if reference is not None]


__all__ = [
    "BOOK_MEDIA_PREFIX",
    "book_destination_key",
    "book_media_reference",
    "book_media_references",
    "public_media_url",
    "transform_volume",
]
