"""Transform parsed Goodreads XML into widget profile and update records.

The Goodreads API only speaks XML. Responses are first converted into plain
mappings by :func:`element_to_data` (attributes merged into the element's
mapping, text kept under ``"_"`` when an element also has attributes or
children), then reshaped here.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from xml.etree.ElementTree import Element

from personal_metrics.utils.normalize import first_present


def element_to_data(element: Element) -> Any:
    children = list(element)
    text = (element.text or "").strip()
    if not children and not element.attrib:
        return text or None

    data: dict[str, Any] = dict(element.attrib)
    for child in children:
        value = element_to_data(child)
        if child.tag not in data:
            data[child.tag] = value
            continue
        existing = data[child.tag]
        if isinstance(existing, list):
            existing.append(value)
        else:
            data[child.tag] = [existing, value]
    if text:
        data["_"] = text
    return data


def _scalar(value: Any) -> str | None:
    if isinstance(value, Mapping):
        value = value.get("_")
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def _number(value: Any) -> int | None:
    text = _scalar(value)
    if text is None:
        return None
    try:
        return int(float(text))
    except ValueError:
        return None


def as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _get(source: Any, *path: str) -> Any:
    return first_present(source, [path])


def transform_profile(user: Mapping[str, Any]) -> dict[str, Any]:
    read_count = 0
    for shelf in as_list(_get(user, "user_shelves", "user_shelf")):
        if isinstance(shelf, Mapping) and _scalar(shelf.get("name")) == "read":
            read_count = _number(shelf.get("book_count")) or 0
            break

    return {
        "name": _scalar(user.get("name")),
        "username": _scalar(user.get("user_name")),
        "link": _scalar(user.get("link")),
        "imageURL": _scalar(user.get("image_url")),
        "smallImageURL": _scalar(user.get("small_image_url")),
        "website": _scalar(user.get("website")),
        "joined": _scalar(user.get("joined")),
        "interests": _scalar(user.get("interests")),
        "favoriteBooks": _scalar(user.get("favorite_books")),
        "friendsCount": _number(user.get("friends_count")),
        "readCount": read_count,
    }


def _status_author(author: Any) -> dict[str, Any]:
    if not isinstance(author, Mapping):
        return {}
    return {
        "name": _scalar(author.get("name")),
        "displayName": _scalar(author.get("shelf_display_name")),
        "sortName": _scalar(author.get("sort_by_name")),
        "about": _scalar(author.get("about")),
    }


def transform_user_status(update: Mapping[str, Any]) -> dict[str, Any]:
    status = _get(update, "object", "user_status")
    status = status if isinstance(status, Mapping) else {}
    book = status.get("book")
    book = book if isinstance(book, Mapping) else {}

    return {
        "type": "userstatus",
        "actionText": _scalar(update.get("action_text")),
        "link": _scalar(update.get("link")),
        "imageURL": _scalar(update.get("image_url")),
        "created": _scalar(status.get("created_at")),
        "updated": _scalar(status.get("updated_at")),
        "page": _number(status.get("page")),
        "percent": _number(status.get("percent")),
        "userID": _scalar(status.get("user_id")),
        "book": {
            "goodreadsID": _scalar(book.get("id")),
            "title": _scalar(book.get("title")),
            "sortTitle": _scalar(book.get("sort_by_title")),
            "isbn": _scalar(book.get("isbn")),
            "isbn13": _scalar(book.get("isbn13")),
            "pageCount": _number(book.get("num_pages")),
            "publicationYear": _number(book.get("publication_year")),
            "publisher": _scalar(book.get("publisher")),
            "format": _scalar(book.get("format")),
            "author": _status_author(book.get("author")),
        },
    }


def transform_review(update: Mapping[str, Any]) -> dict[str, Any]:
    actor = update.get("actor")
    actor = actor if isinstance(actor, Mapping) else {}
    book = _get(update, "object", "book")
    book = book if isinstance(book, Mapping) else {}
    authors = as_list(_get(book, "authors", "author"))
    author = authors[0] if authors else None

    return {
        "type": "review",
        "actionText": _scalar(update.get("action_text")),
        "link": _scalar(update.get("link")),
        "imageURL": _scalar(update.get("image_url")),
        "updated": _scalar(update.get("updated_at")),
        "rating": _number(_get(update, "action", "rating")),
        "actor": {
            "name": _scalar(actor.get("name")),
            "link": _scalar(actor.get("link")),
            "imageURL": _scalar(actor.get("image_url")),
        },
        "book": {
            "goodreadsID": _scalar(book.get("id")),
            "title": _scalar(book.get("title")),
            "link": _scalar(book.get("link")),
            "author": _status_author(author),
        },
    }


def transform_update(update: Any) -> dict[str, Any] | None:
    if not isinstance(update, Mapping):
        return None
    kind = update.get("type")
    if kind == "userstatus":
        return transform_user_status(update)
    if kind == "review":
        return transform_review(update)
    return None


def transform_updates(user: Mapping[str, Any]) -> list[dict[str, Any]]:
    raw_updates = as_list(_get(user, "updates", "update"))
    transformed = (transform_update(update) for update in raw_updates)
    return [update for update in transformed if update is not None]


def shelf_entries(reviews: list[Any]) -> list[dict[str, Any]]:
    """Return ``{isbn, rating}`` for every shelf review that carries an ISBN."""

    entries: list[dict[str, Any]] = []
    for review in reviews:
        if not isinstance(review, Mapping):
            continue
        book = review.get("book")
        if not isinstance(book, Mapping):
            continue
        isbn = _scalar(book.get("isbn13")) or _scalar(book.get("isbn"))
        if not isbn:
            continue
        entries.append({"isbn": isbn, "rating": _number(review.get("rating"))})
    return entries


__all__ = [
    "as_list",
    "element_to_data",
    "shelf_entries",
    "transform_profile",
    "transform_update",
    "transform_updates",
]
