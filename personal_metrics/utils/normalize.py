"""Helpers for normalising identifiers, titles and links from upstream APIs."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import re
from typing import Any
import unicodedata

_WHITESPACE = re.compile(r"\s+")
_ISBN_SEPARATORS = re.compile(r"[\s-]+")


def normalize_text(value: str | None) -> str:
    """Return a lowercase, accent-free representation of *value*."""

    if not value:
        return ""
    text = unicodedata.normalize("NFKD", value)
    without_accents = "".join(char for char in text if not unicodedata.combining(char))
    return without_accents.casefold().strip()


def normalize_title(value: Any) -> str:
    """Return the comparison form of a book or release title."""

    if not isinstance(value, str):
        return ""
    return _WHITESPACE.sub(" ", normalize_text(value))


def strip_isbn(value: Any) -> str:
    """Return *value* without dashes or whitespace; empty when not an ISBN-like string."""

    if value is None or isinstance(value, bool):
        return ""
    text = str(value).strip()
    if not text:
        return ""
    return _ISBN_SEPARATORS.sub("", text).upper()


def isbn_variants(*values: Any) -> list[str]:
    """Return every ISBN from *values* both as given and without dashes.

    Order follows *values* so that callers passing ISBN-13 before ISBN-10 keep
    that preference. Duplicates and empty values are dropped.
    """

    variants: list[str] = []
    for value in values:
        if not isinstance(value, (str, int)) or isinstance(value, bool):
            continue
        raw = str(value).strip()
        for candidate in (raw, strip_isbn(raw)):
            if candidate and candidate not in variants:
                variants.append(candidate)
    return variants


def preferred_isbn(*values: Any) -> str | None:
    """Return the first usable ISBN from *values* in canonical (dash-free) form."""

    for value in values:
        stripped = strip_isbn(value) if isinstance(value, (str, int)) else ""
        if stripped:
            return stripped
    return None


def first_present(
    source: Mapping[str, Any] | None,
    paths: Sequence[Sequence[str]],
) -> Any | None:
    """Return the first non-empty value found by trying each key path in order.

    ``first_present(book, [("author", "name"), ("author", "displayName")])``
    tries ``book["author"]["name"]`` and then ``book["author"]["displayName"]``.
    """

    if not isinstance(source, Mapping):
        return None
    for path in paths:
        current: Any = source
        for key in path:
            if not isinstance(current, Mapping):
                current = None
                break
            current = current.get(key)
        if isinstance(current, str):
            current = current.strip()
        if current not in (None, "", [], {}):
            return current
    return None


def to_https(url: Any) -> str:
    """Upgrade ``http://`` links to ``https://``; other values pass through as strings."""

    if not isinstance(url, str):
        return ""
    text = url.strip()
    if text.startswith("http://"):
        return f"https://{text[len('http://'):]}"
    return text


__all__ = [
    "first_present",
    "isbn_variants",
    "normalize_text",
    "normalize_title",
    "preferred_isbn",
    "strip_isbn",
    "to_https",
]
