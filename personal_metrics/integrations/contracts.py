"""Errors and shared types for third-party API integrations."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

from personal_metrics.utils.retry import is_quota_exhausted


class ProviderError(RuntimeError):
    """Base exception raised when a provider request fails."""

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status_code: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.message = message
        self.status_code = status_code
        self.cause = cause


class ProviderInvalidInputError(ProviderError):
    """Raised before any request is made when required input or credentials are missing."""


class ProviderTransportError(ProviderError):
    """Raised when the request never produced an HTTP response."""


class ProviderInvalidResponseError(ProviderError):
    """Raised when the upstream payload cannot be decoded."""


class ProviderHTTPError(ProviderError):
    """Raised when the upstream service answered with a non-success status."""

    def __init__(
        self,
        provider: str,
        status_code: int,
        message: str,
        *,
        body: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(provider, message, status_code=status_code)
        self.body = body
        self.headers = dict(headers or {})


class ProviderRateLimitedError(ProviderHTTPError):
    """Raised for transient throttling (HTTP 429 or 503)."""


class ProviderQuotaExhaustedError(ProviderHTTPError):
    """Raised for HTTP 429 responses reporting an exhausted periodic quota."""


def error_from_status(
    provider: str,
    status_code: int,
    *,
    body: str | None = None,
    headers: Mapping[str, str] | None = None,
) -> ProviderHTTPError:
    """Map an unsuccessful HTTP status to the matching provider error."""

    if status_code == 429 and is_quota_exhausted(body):
        return ProviderQuotaExhaustedError(
            provider,
            status_code,
            f"{provider} quota exhausted",
            body=body,
            headers=headers,
        )
    if status_code in {429, 503}:
        return ProviderRateLimitedError(
            provider,
            status_code,
            f"{provider} rate limited the request",
            body=body,
            headers=headers,
        )
    return ProviderHTTPError(
        provider,
        status_code,
        f"{provider} responded with HTTP {status_code}",
        body=body,
        headers=headers,
    )


class SummaryProvider(Protocol):
    """Black-box text summariser used for optional widget summaries."""

    async def summarize(self, prompt: str) -> str:
        """Return summary text for *prompt* or raise ``SummaryError``."""


class SummaryError(RuntimeError):
    """Raised when a summary could not be generated."""


__all__ = [
    "ProviderError",
    "ProviderHTTPError",
    "ProviderInvalidInputError",
    "ProviderInvalidResponseError",
    "ProviderQuotaExhaustedError",
    "ProviderRateLimitedError",
    "ProviderTransportError",
    "SummaryError",
    "SummaryProvider",
    "error_from_status",
]
