"""Discogs collection client."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
from typing import Any

import httpx

from personal_metrics.config import DiscogsConfig
from personal_metrics.integrations.contracts import (
    ProviderError,
    ProviderInvalidInputError,
    ProviderInvalidResponseError,
)
from personal_metrics.integrations.http import UpstreamHttpClient
from personal_metrics.logging import get_logger
from personal_metrics.logging_events import log_event
from personal_metrics.transformers.discogs import filter_resource
from personal_metrics.utils.concurrency import bounded_map

logger = get_logger(__name__)

PROVIDER = "discogs"
RELEASES_PER_PAGE = 50
MAX_PAGES = 200


def _with_token(url: str, token: str) -> str:
    if "token=" in url:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}token={token}"


class DiscogsClient:
    def __init__(
        self,
        *,
        token: str | None,
        username: str | None,
        base_url: str,
        user_agent: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = token
        self._username = username
        self._http = UpstreamHttpClient(
            provider=PROVIDER,
            base_url=base_url,
            timeout=timeout,
            headers={"User-Agent": user_agent},
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: DiscogsConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "DiscogsClient":
        return cls(
            token=config.token,
            username=config.username,
            base_url=config.base_url,
            user_agent=config.user_agent,
            transport=transport,
        )

    def _require_token(self) -> str:
        if not self._token:
            raise ProviderInvalidInputError(PROVIDER, "DISCOGS_API_KEY must be configured")
        return self._token

    async def fetch_releases(self) -> dict[str, Any]:
        """Fetch every release in the collection, following pagination.

        Any failed page aborts the fetch. The returned pagination block
        describes the merged result as a single page.
        """

        token = self._require_token()
        if not self._username:
            raise ProviderInvalidInputError(PROVIDER, "DISCOGS_USERNAME must be configured")

        releases: list[Any] = []
        page = 1
        while True:
            logger.info("Fetching Discogs releases page %d", page)
            payload = await self._http.get_json(
                f"/users/{self._username}/collection/folders/0/releases",
                params={"token": token, "page": page, "per_page": RELEASES_PER_PAGE},
            )
            if not isinstance(payload, Mapping):
                raise ProviderInvalidResponseError(PROVIDER, "Discogs returned an unexpected payload")
            page_releases = payload.get("releases")
            if isinstance(page_releases, list):
                releases.extend(page_releases)

            pagination = payload.get("pagination")
            pagination = pagination if isinstance(pagination, Mapping) else {}
            current = int(pagination.get("page") or page)
            pages = int(pagination.get("pages") or current)
            if current >= pages or page >= MAX_PAGES:
                break
            page += 1

        return {
            "pagination": {
                "page": 1,
                "pages": 1,
                "per_page": len(releases),
                "items": len(releases),
                "urls": {},
            },
            "releases": releases,
        }

    async def fetch_release_details(
        self, resource_url: str, release_id: Any
    ) -> dict[str, Any] | None:
        """Fetch the full release resource; failures are logged and yield ``None``."""

        token = self._require_token()
        url = _with_token(resource_url, token)
        try:
            payload = await self._http.get_json(url)
        except ProviderError as exc:
            logger.warning(
                "Failed to fetch release resource for %s: %s", release_id, exc.message
            )
            return None
        if not isinstance(payload, dict):
            logger.warning("Discogs returned no resource for release %s", release_id)
            return None
        return payload

    async def fetch_releases_batch(
        self,
        releases: Sequence[Mapping[str, Any]],
        *,
        concurrency: int = 2,
        delay_ms: int = 1000,
        stop_on_error: bool = False,
    ) -> list[Mapping[str, Any]]:
        """Attach a filtered ``resource`` to every release that has a resource URL.

        Results are merged back onto ``releases`` by id; releases without a
        resource URL or whose lookup failed are returned unchanged.
        """

        fetchable = [
            release
            for release in releases
            if isinstance(release.get("basic_information"), Mapping)
            and release["basic_information"].get("resource_url")
        ]
        skipped = len(releases) - len(fetchable)
        if skipped:
            logger.warning("Found %d Discogs releases without resource_url", skipped)
        if not fetchable:
            logger.warning("No Discogs releases with resource_url to fetch")
            return list(releases)

        async def _enhance(release: Mapping[str, Any]) -> Mapping[str, Any]:
            info = release["basic_information"]
            release_id = release.get("id") or info.get("id")
            resource = await self.fetch_release_details(info["resource_url"], release_id)
            if resource is None:
                return release
            return {**release, "resource": filter_resource(resource)}

        results = await bounded_map(
            fetchable,
            _enhance,
            concurrency=concurrency,
            delay_ms=delay_ms,
            stop_on_error=stop_on_error,
        )

        enhanced_by_id: dict[Any, Mapping[str, Any]] = {}
        for original, result in zip(fetchable, results):
            if isinstance(result, BaseException):
                logger.error("Error processing Discogs release %s: %s", original.get("id"), result)
                continue
            enhanced_by_id[result.get("id")] = result

        merged = [enhanced_by_id.get(release.get("id"), release) for release in releases]
        enhanced = sum(1 for release in merged if release.get("resource"))
        log_event(
            logger,
            "discogs.releases_batch",
            level=logging.INFO,
            component="integrations.discogs",
            status="ok" if enhanced == len(fetchable) else "partial",
            requested=len(fetchable),
            enhanced=enhanced,
        )
        return merged


__all__ = ["DiscogsClient", "PROVIDER", "RELEASES_PER_PAGE"]
