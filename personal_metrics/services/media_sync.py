"""Download remote images and copy them into the media store."""

from __future__ import annotations

from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass
import logging

import httpx

from personal_metrics.integrations.http import build_timeout
from personal_metrics.logging import get_logger
from personal_metrics.logging_events import log_event
from personal_metrics.storage.media import MediaStore, StoredObject
from personal_metrics.utils.concurrency import bounded_map

logger = get_logger(__name__)

DEFAULT_UPLOAD_CONCURRENCY = 10
USER_AGENT = "MetricsApp/1.0 (+media-sync)"


class MediaDownloadError(RuntimeError):
    """Raised when a source image could not be downloaded."""


@dataclass(slots=True, frozen=True)
class MediaReference:
    destination_key: str
    source_url: str | None
    logical_id: str | None = None


@dataclass(slots=True, frozen=True)
class UploadResult:
    reference: MediaReference
    stored: StoredObject | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.stored is not None

    @property
    def key(self) -> str:
        return self.reference.destination_key


def compute_missing(
    candidates: Iterable[MediaReference], stored_keys: Collection[str]
) -> list[MediaReference]:
    """Return the candidates that have a source URL and are not stored yet.

    Duplicate destination keys are collapsed onto their first occurrence.
    """

    missing: list[MediaReference] = []
    seen: set[str] = set()
    for candidate in candidates:
        key = candidate.destination_key
        if not key or not candidate.source_url:
            continue
        if key in stored_keys or key in seen:
            continue
        seen.add(key)
        missing.append(candidate)
    return missing


def uploaded_keys(results: Iterable[UploadResult]) -> list[str]:
    return [result.key for result in results if result.ok]


class MediaSyncHelper:
    """Copy remote images into a :class:`MediaStore` with bounded concurrency."""

    def __init__(
        self,
        store: MediaStore,
        *,
        concurrency: int = DEFAULT_UPLOAD_CONCURRENCY,
        download_timeout: float = 15.0,
        max_bytes: int = 10 * 1024 * 1024,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._store = store
        self._concurrency = max(1, int(concurrency))
        self._download_timeout = download_timeout
        self._max_bytes = max_bytes
        self._transport = transport

    @property
    def bucket(self) -> str:
        return self._store.bucket

    async def list_stored_keys(self) -> frozenset[str]:
        """Snapshot the stored keys; an unreadable store counts as empty."""

        try:
            keys = await self._store.list_keys()
        except Exception as exc:
            log_event(
                logger,
                "media.list_keys",
                level=logging.WARNING,
                component="services.media_sync",
                status="error",
                bucket=self.bucket,
                error=str(exc),
            )
            return frozenset()
        return frozenset(keys)

    async def sync(
        self, candidates: Iterable[MediaReference], stored_keys: Collection[str]
    ) -> list[UploadResult]:
        return await self.upload_all(compute_missing(candidates, stored_keys))

    async def upload_all(
        self, refs: Sequence[MediaReference], concurrency: int | None = None
    ) -> list[UploadResult]:
        """Transfer every reference, recording failures per item.

        An unexpected failure of the batch itself is logged and reported as an
        empty result list.
        """

        if not refs:
            return []
        limit = self._concurrency if concurrency is None else max(1, int(concurrency))
        try:
            raw_results = await bounded_map(
                list(refs), self._transfer, concurrency=limit, stop_on_error=False
            )
        except Exception as exc:
            log_event(
                logger,
                "media.upload_batch",
                level=logging.ERROR,
                component="services.media_sync",
                status="error",
                bucket=self.bucket,
                error=str(exc),
                requested=len(refs),
            )
            return []

        results: list[UploadResult] = []
        for ref, outcome in zip(refs, raw_results):
            if isinstance(outcome, UploadResult):
                results.append(outcome)
            else:
                results.append(UploadResult(reference=ref, error=str(outcome)))

        uploaded = sum(1 for result in results if result.ok)
        log_event(
            logger,
            "media.upload_batch",
            component="services.media_sync",
            status="ok" if uploaded == len(results) else "partial",
            bucket=self.bucket,
            requested=len(results),
            uploaded=uploaded,
        )
        return results

    async def _transfer(self, ref: MediaReference) -> UploadResult:
        try:
            data, content_type = await self._download(ref.source_url or "")
            stored = await self._store.upload(ref.destination_key, data, content_type)
        except Exception as exc:
            logger.warning(
                "Failed to copy media %s from %s: %s", ref.destination_key, ref.source_url, exc
            )
            return UploadResult(reference=ref, error=str(exc))
        return UploadResult(reference=ref, stored=stored)

    async def _download(self, url: str) -> tuple[bytes, str | None]:
        url = url.strip()
        if not url:
            raise MediaDownloadError("Media URL must be provided")

        async with httpx.AsyncClient(
            timeout=build_timeout(self._download_timeout),
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
            transport=self._transport,
        ) as client:
            async with client.stream("GET", url) as response:
                if not response.is_success:
                    raise MediaDownloadError(f"Download of {url} failed with HTTP {response.status_code}")
                content_type = (response.headers.get("content-type") or "").split(";")[0].strip()
                if content_type and not content_type.startswith("image/"):
                    raise MediaDownloadError(f"Downloaded file is not an image ({content_type})")

                length_header = response.headers.get("content-length")
                if length_header and length_header.isdigit() and int(length_header) > self._max_bytes:
                    raise MediaDownloadError("Media exceeds maximum allowed size")

                chunks: list[bytes] = []
                written = 0
                async for chunk in response.aiter_bytes():
                    if not chunk:
                        continue
                    written += len(chunk)
                    if written > self._max_bytes:
                        raise MediaDownloadError("Media exceeds maximum allowed size")
                    chunks.append(chunk)
        return b"".join(chunks), content_type or None


__all__ = [
    "DEFAULT_UPLOAD_CONCURRENCY",
    "MediaDownloadError",
    "MediaReference",
    "MediaSyncHelper",
    "UploadResult",
    "compute_missing",
    "uploaded_keys",
]
