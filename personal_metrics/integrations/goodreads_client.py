"""Goodreads XML API client for the user profile and the read shelf."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from defusedxml import ElementTree
import httpx

from personal_metrics.config import GoodreadsConfig
from personal_metrics.integrations.contracts import (
    ProviderInvalidInputError,
    ProviderInvalidResponseError,
)
from personal_metrics.integrations.http import UpstreamHttpClient
from personal_metrics.logging import get_logger
from personal_metrics.transformers.goodreads import (
    as_list,
    element_to_data,
    transform_profile,
    transform_updates,
)

logger = get_logger(__name__)

PROVIDER = "goodreads"


@dataclass(slots=True)
class GoodreadsUser:
    raw: dict[str, Any]
    profile: dict[str, Any]
    updates: list[dict[str, Any]] = field(default_factory=list)


def parse_xml(provider: str, text: str) -> dict[str, Any]:
    try:
        root = ElementTree.fromstring(text)
    except (ElementTree.ParseError, ValueError) as exc:
        raise ProviderInvalidResponseError(provider, f"{provider} returned invalid XML", cause=exc) from exc
    data = element_to_data(root)
    if not isinstance(data, dict):
        raise ProviderInvalidResponseError(provider, f"{provider} returned an empty document")
    return {root.tag: data}


class GoodreadsClient:
    def __init__(
        self,
        *,
        api_key: str | None,
        user_id: str | None,
        base_url: str,
        shelf_size: int = 18,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._user_id = user_id
        self._shelf_size = shelf_size
        self._http = UpstreamHttpClient(
            provider=PROVIDER,
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/xml"},
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: GoodreadsConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "GoodreadsClient":
        return cls(
            api_key=config.api_key,
            user_id=config.user_id,
            base_url=config.base_url,
            shelf_size=config.shelf_size,
            transport=transport,
        )

    def _require_credentials(self) -> tuple[str, str]:
        if not self._api_key or not self._user_id:
            raise ProviderInvalidInputError(
                PROVIDER, "GOODREADS_API_KEY and GOODREADS_USER_ID must be configured"
            )
        return self._api_key, self._user_id

    async def fetch_user(self) -> GoodreadsUser:
        """Fetch the profile and recent activity of the configured user."""

        api_key, user_id = self._require_credentials()
        text = await self._http.get_text(f"/user/show/{user_id}.xml", params={"key": api_key})
        raw = parse_xml(PROVIDER, text)
        user = (raw.get("GoodreadsResponse") or {}).get("user")
        if not isinstance(user, dict):
            raise ProviderInvalidResponseError(PROVIDER, "Goodreads response has no user element")

        updates = transform_updates(user)
        logger.debug("Fetched Goodreads user %s with %d updates", user_id, len(updates))
        return GoodreadsUser(raw=raw, profile=transform_profile(user), updates=updates)

    async def fetch_read_shelf(self) -> list[dict[str, Any]]:
        """Return the raw reviews on the ``read`` shelf, most recently read first."""

        api_key, user_id = self._require_credentials()
        text = await self._http.get_text(
            f"/review/list/{user_id}.xml",
            params={
                "key": api_key,
                "v": 2,
                "shelf": "read",
                "sort": "date_read",
                "per_page": self._shelf_size,
            },
        )
        raw = parse_xml(PROVIDER, text)
        reviews = ((raw.get("GoodreadsResponse") or {}).get("reviews") or {})
        if not isinstance(reviews, dict):
            return []
        return [review for review in as_list(reviews.get("review")) if isinstance(review, dict)]


__all__ = ["GoodreadsClient", "GoodreadsUser", "PROVIDER", "parse_xml"]
