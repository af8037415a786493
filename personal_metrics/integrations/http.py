"""Shared HTTPX plumbing for the upstream API clients."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from personal_metrics.integrations.contracts import (
    ProviderInvalidResponseError,
    ProviderTransportError,
    error_from_status,
)


def build_timeout(timeout_seconds: float) -> httpx.Timeout:
    seconds = max(float(timeout_seconds), 0.1)
    return httpx.Timeout(seconds, connect=min(seconds, 5.0))


@dataclass(slots=True)
class UpstreamHttpClient:
    """Issue single GET requests and translate failures into provider errors.

    One attempt per call; retry policy is applied by the callers.
    """

    provider: str
    base_url: str = ""
    timeout: float = 10.0
    headers: Mapping[str, str] = field(default_factory=dict)
    transport: httpx.AsyncBaseTransport | None = None

    async def get(self, url: str, *, params: Mapping[str, Any] | None = None) -> httpx.Response:
        request_headers = {"Accept": "application/json", **dict(self.headers)}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url.rstrip("/"),
                timeout=build_timeout(self.timeout),
                headers=request_headers,
                transport=self.transport,
                follow_redirects=True,
            ) as client:
                response = await client.get(url, params=_clean_params(params))
        except httpx.HTTPError as exc:
            raise ProviderTransportError(
                self.provider, f"{self.provider} request failed: {exc}", cause=exc
            ) from exc

        if response.is_success:
            return response
        raise error_from_status(
            self.provider,
            response.status_code,
            body=response.text,
            headers=response.headers,
        )

    async def get_json(self, url: str, *, params: Mapping[str, Any] | None = None) -> Any:
        response = await self.get(url, params=params)
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderInvalidResponseError(
                self.provider, f"{self.provider} returned invalid JSON", cause=exc
            ) from exc

    async def get_text(self, url: str, *, params: Mapping[str, Any] | None = None) -> str:
        response = await self.get(url, params=params)
        return response.text


def _clean_params(params: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if params is None:
        return None
    return {key: value for key, value in params.items() if value is not None}


__all__ = ["UpstreamHttpClient", "build_timeout"]
