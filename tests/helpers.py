from __future__ import annotations

import copy
from collections.abc import Callable, Mapping
from typing import Any

import httpx

from personal_metrics.storage.documents import StoreError
from personal_metrics.storage.media import StoredObject, UploadError

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24


class InMemoryDocumentStore:
    def __init__(self, *, fail_on: set[str] | None = None) -> None:
        self.documents: dict[tuple[str, str], dict[str, Any]] = {}
        self.writes: list[tuple[str, str]] = []
        self._fail_on = set(fail_on or ())

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        document = self.documents.get((collection, doc_id))
        return copy.deepcopy(document) if document is not None else None

    async def set(self, collection: str, doc_id: str, value: Mapping[str, Any]) -> None:
        if doc_id in self._fail_on:
            raise StoreError(
                f"Failed to write {collection}/{doc_id}", collection=collection, doc_id=doc_id
            )
        self.writes.append((collection, doc_id))
        self.documents[(collection, doc_id)] = copy.deepcopy(dict(value))


class RecordingMediaStore:
    def __init__(
        self,
        *,
        bucket: str = "images",
        keys: set[str] | None = None,
        fail_keys: set[str] | None = None,
        fail_listing: bool = False,
    ) -> None:
        self.bucket = bucket
        self.keys: set[str] = set(keys or ())
        self.uploads: list[str] = []
        self._fail_keys = set(fail_keys or ())
        self._fail_listing = fail_listing

    async def list_keys(self) -> list[str]:
        if self._fail_listing:
            raise RuntimeError("bucket unavailable")
        return sorted(self.keys)

    async def upload(self, key: str, data: bytes, content_type: str | None = None) -> StoredObject:
        if key in self._fail_keys:
            raise UploadError(key, f"Failed to store {key}")
        self.keys.add(key)
        self.uploads.append(key)
        return StoredObject(key=key, size_bytes=len(data), content_type=content_type)


class FakeSummarizer:
    def __init__(self, text: str | None = "<p>Summary</p>", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.prompts: list[str] = []

    async def summarize(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.text or ""


def image_transport(
    *, failing: set[str] | None = None, requested: list[str] | None = None
) -> httpx.MockTransport:
    failing_urls = set(failing or ())

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if requested is not None:
            requested.append(url)
        if url in failing_urls:
            return httpx.Response(404, text="missing")
        return httpx.Response(200, content=PNG_BYTES, headers={"content-type": "image/jpeg"})

    return httpx.MockTransport(handler)


def make_volume(
    volume_id: str,
    title: str,
    *,
    isbn13: str | None = None,
    isbn10: str | None = None,
    authors: list[str] | None = None,
    with_image: bool = True,
) -> dict[str, Any]:
    identifiers = []
    if isbn13:
        identifiers.append({"type": "ISBN_13", "identifier": isbn13})
    if isbn10:
        identifiers.append({"type": "ISBN_10", "identifier": isbn10})
    info: dict[str, Any] = {
        "title": title,
        "authors": authors or [],
        "industryIdentifiers": identifiers,
        "infoLink": f"http://books.google.com/books?id={volume_id}",
        "pageCount": 320,
    }
    if with_image:
        info["imageLinks"] = {
            "thumbnail": f"http://books.google.com/books/content?id={volume_id}&zoom=1",
            "smallThumbnail": f"http://books.google.com/books/content?id={volume_id}&zoom=5",
        }
    return {"id": volume_id, "volumeInfo": info}


def volumes_payload(*volumes: dict[str, Any]) -> dict[str, Any]:
    return {"kind": "books#volumes", "totalItems": len(volumes), "items": list(volumes)}


def google_books_error(status: str, message: str, code: int = 429) -> dict[str, Any]:
    return {"error": {"code": code, "message": message, "status": status}}


def google_books_transport(
    routes: Mapping[str, Callable[[], httpx.Response]],
    *,
    queries: list[str] | None = None,
) -> httpx.MockTransport:
    """Answer ``/volumes`` lookups by the prefix of their ``q`` parameter."""

    def handler(request: httpx.Request) -> httpx.Response:
        query = request.url.params.get("q", "")
        if queries is not None:
            queries.append(query)
        for prefix, respond in routes.items():
            if query.startswith(prefix):
                return respond()
        return httpx.Response(200, json={"kind": "books#volumes", "totalItems": 0})

    return httpx.MockTransport(handler)


GOODREADS_USER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<GoodreadsResponse>
  <Request>
    <authentication>true</authentication>
    <method><![CDATA[user_show]]></method>
  </Request>
  <user>
    <id>12345</id>
    <name>Chris</name>
    <user_name>chrisvogt</user_name>
    <link>https://www.goodreads.com/user/show/12345-chris</link>
    <image_url>https://images.gr-assets.com/users/p3.jpg</image_url>
    <small_image_url>https://images.gr-assets.com/users/p2.jpg</small_image_url>
    <website>https://www.chrisvogt.me</website>
    <joined>10/2010</joined>
    <interests>software, music</interests>
    <favorite_books>Dune</favorite_books>
    <friends_count type="integer">42</friends_count>
    <user_shelves type="array">
      <user_shelf>
        <id type="integer">1</id>
        <name>read</name>
        <book_count type="integer">321</book_count>
      </user_shelf>
      <user_shelf>
        <id type="integer">2</id>
        <name>to-read</name>
        <book_count type="integer">12</book_count>
      </user_shelf>
    </user_shelves>
    <updates type="array">
      <update type="userstatus">
        <action_text>is on page 100 of 502 of The Overstory</action_text>
        <link>https://www.goodreads.com/user_status/show/1</link>
        <image_url>https://images.gr-assets.com/books/1.jpg</image_url>
        <object>
          <user_status>
            <created_at type="datetime">2024-01-01T10:00:00-08:00</created_at>
            <page type="integer">100</page>
            <percent type="integer">20</percent>
            <updated_at type="datetime">2024-01-01T10:00:00-08:00</updated_at>
            <user_id type="integer">12345</user_id>
            <book>
              <id type="integer">111</id>
              <title>The Overstory</title>
              <sort_by_title>Overstory, The</sort_by_title>
              <isbn>039335668X</isbn>
              <isbn13>978-0-393-35668-0</isbn13>
              <num_pages type="integer">502</num_pages>
              <publication_year type="integer">2018</publication_year>
              <publisher>W. W. Norton</publisher>
              <format>Paperback</format>
              <author>
                <id type="integer">1</id>
                <name>Richard Powers</name>
                <sort_by_name>Powers, Richard</sort_by_name>
                <shelf_display_name>Powers, Richard</shelf_display_name>
              </author>
            </book>
          </user_status>
        </object>
      </update>
      <update type="review">
        <action_text>rated a book 5 stars</action_text>
        <link>https://www.goodreads.com/review/show/2</link>
        <image_url>https://images.gr-assets.com/books/2.jpg</image_url>
        <actor>
          <id>12345</id>
          <name>Chris</name>
          <image_url>https://images.gr-assets.com/users/p2.jpg</image_url>
          <link>https://www.goodreads.com/user/show/12345</link>
        </actor>
        <updated_at>Tue, 02 Jan 2024 10:00:00 -0800</updated_at>
        <action type="rating">
          <rating>5</rating>
        </action>
        <object>
          <book>
            <id>222</id>
            <title>Piranesi</title>
            <link>https://www.goodreads.com/book/show/222</link>
            <authors>
              <author>
                <id>2</id>
                <name>Susanna Clarke</name>
              </author>
            </authors>
          </book>
        </object>
      </update>
      <update type="readstatus">
        <action_text>wants to read Dune</action_text>
        <link>https://www.goodreads.com/read_statuses/3</link>
      </update>
    </updates>
  </user>
</GoodreadsResponse>
"""

GOODREADS_SHELF_XML = """<?xml version="1.0" encoding="UTF-8"?>
<GoodreadsResponse>
  <reviews start="1" end="2" total="2">
    <review>
      <id>9</id>
      <book>
        <id type="integer">111</id>
        <isbn>039335668X</isbn>
        <isbn13>9780393356680</isbn13>
        <title>The Overstory</title>
      </book>
      <rating>5</rating>
      <read_at>Mon Jan 01 10:00:00 -0800 2024</read_at>
    </review>
    <review>
      <id>10</id>
      <book>
        <id type="integer">333</id>
        <isbn nil="true"/>
        <isbn13 nil="true"/>
        <title>A Book Without Identifiers</title>
      </book>
      <rating>3</rating>
    </review>
  </reviews>
</GoodreadsResponse>
"""


def goodreads_transport(
    *,
    user_xml: str = GOODREADS_USER_XML,
    shelf_xml: str = GOODREADS_SHELF_XML,
    requests: list[httpx.Request] | None = None,
) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        path = request.url.path
        if path.startswith("/user/show/"):
            return httpx.Response(200, text=user_xml, headers={"content-type": "application/xml"})
        if path.startswith("/review/list/"):
            return httpx.Response(200, text=shelf_xml, headers={"content-type": "application/xml"})
        return httpx.Response(404, text="not found")

    return httpx.MockTransport(handler)


def make_release(release_id: int, title: str, *, with_resource: bool = True) -> dict[str, Any]:
    info: dict[str, Any] = {
        "id": release_id,
        "master_id": release_id * 10,
        "title": title,
        "year": 1977,
        "thumb": f"https://i.discogs.com/{release_id}/thumb.jpeg",
        "cover_image": f"https://i.discogs.com/{release_id}/cover.png",
        "formats": [{"name": "Vinyl", "qty": "1"}],
        "labels": [{"name": "Warner Bros."}],
        "artists": [{"name": "Fleetwood Mac"}],
        "genres": ["Rock"],
        "styles": ["Soft Rock"],
    }
    if with_resource:
        info["resource_url"] = f"https://api.discogs.com/releases/{release_id}"
    return {
        "id": release_id,
        "instance_id": release_id + 1000,
        "date_added": "2024-01-01T00:00:00-08:00",
        "rating": 0,
        "folder_id": 1,
        "basic_information": info,
    }


def release_resource(release_id: int) -> dict[str, Any]:
    return {
        "id": release_id,
        "title": "Rumours",
        "year": 1977,
        "country": "US",
        "genres": ["Rock"],
        "uri": f"https://www.discogs.com/release/{release_id}",
        "resource_url": f"https://api.discogs.com/releases/{release_id}",
        "tracklist": [
            {"position": "A1", "title": "Second Hand News", "duration": "2:43", "type_": "track", "extraartists": []},
        ],
        "community": {"have": 100, "want": 10},
        "videos": [{"uri": "https://youtube.com/watch?v=1"}],
    }
