import asyncio

import httpx
import pytest

from personal_metrics.integrations.contracts import ProviderInvalidInputError
from personal_metrics.integrations.google_books_client import GoogleBooksClient
from tests.helpers import google_books_error, make_volume, volumes_payload


def _client(handler, *, max_attempts: int = 3) -> GoogleBooksClient:
    return GoogleBooksClient(
        api_key="books-key",
        base_url="https://books.example.com/books/v1",
        max_attempts=max_attempts,
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    recorded: list[float] = []

    async def fake_sleep(delay: float) -> None:
        recorded.append(delay)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    return recorded


@pytest.mark.asyncio
async def test_fetch_by_isbn_queries_first_volume_without_dashes() -> None:
    seen: list[httpx.Request] = []
    volume = make_volume("vol-1", "The Overstory", isbn13="9780393356680")

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=volumes_payload(volume))

    result = await _client(handler).fetch_by_isbn("978-0-393-35668-0")

    assert result == volume
    [request] = seen
    assert request.url.path == "/books/v1/volumes"
    assert request.url.params["q"] == "isbn:9780393356680"
    assert request.url.params["key"] == "books-key"
    assert request.url.params["maxResults"] == "1"


@pytest.mark.asyncio
async def test_fetch_by_isbn_requires_an_isbn() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - never called
        raise AssertionError("no request expected")

    with pytest.raises(ProviderInvalidInputError):
        await _client(handler).fetch_by_isbn("  ")


@pytest.mark.asyncio
async def test_search_builds_title_and_author_query() -> None:
    queries: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        queries.append(request.url.params["q"])
        return httpx.Response(200, json={"totalItems": 0})

    client = _client(handler)
    assert await client.search_by_title_author("Piranesi", "Susanna Clarke") is None
    assert await client.search_by_title_author("Piranesi") is None

    assert queries == ["intitle:Piranesi inauthor:Susanna Clarke", "intitle:Piranesi"]
    with pytest.raises(ProviderInvalidInputError):
        await client.search_by_title_author("")


@pytest.mark.asyncio
async def test_rate_limits_are_retried_with_backoff(sleeps: list[float]) -> None:
    calls = 0
    volume = make_volume("vol-1", "The Overstory")

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls < 3:
            return httpx.Response(
                429, json=google_books_error("RATE_LIMIT_EXCEEDED", "Too many requests")
            )
        return httpx.Response(200, json=volumes_payload(volume))

    result = await _client(handler).fetch_by_isbn("9780393356680")

    assert result == volume
    assert calls == 3
    assert sleeps == [2.0, 4.0]


@pytest.mark.asyncio
async def test_quota_exhaustion_gives_up_immediately(sleeps: list[float]) -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(
            429,
            json=google_books_error(
                "RESOURCE_EXHAUSTED", "Quota exceeded for quota metric 'Queries per day'"
            ),
        )

    assert await _client(handler).fetch_by_isbn("9780393356680") is None
    assert calls == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_quota_exhaustion_with_long_error_details_gives_up_immediately(
    sleeps: list[float],
) -> None:
    calls = 0
    payload = google_books_error(
        "RESOURCE_EXHAUSTED", "Quota exceeded for quota metric 'Queries per day'"
    )
    payload["error"]["details"] = [
        {"@type": "type.googleapis.com/google.rpc.Help", "links": [{"url": "x" * 2500}]}
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(429, json=payload)

    assert await _client(handler).fetch_by_isbn("9780393356680") is None
    assert calls == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_exhausted_retries_return_none(sleeps: list[float]) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    assert await _client(handler, max_attempts=2).fetch_by_isbn("9780393356680") is None
    assert sleeps == [2.0]


@pytest.mark.asyncio
async def test_non_retryable_errors_return_none(sleeps: list[float]) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"error": {"code": 403, "message": "forbidden"}})

    assert await _client(handler).fetch_by_isbn("9780393356680") is None
    assert sleeps == []
