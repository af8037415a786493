"""API error types and the ``{"ok": false, "error": ...}`` envelope."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
import logging
from typing import Any

from fastapi import status
from fastapi.responses import JSONResponse

from personal_metrics.logging import get_logger
from personal_metrics.logging_events import log_event

_logger = get_logger(__name__)


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    DEPENDENCY_ERROR = "DEPENDENCY_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppError(Exception):
    """An error the widgets API renders as an error envelope.

    Subclasses pin ``code``, ``http_status`` and the default message.
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "An unexpected error occurred."

    def __init__(
        self,
        message: str | None = None,
        *,
        meta: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        self.meta = meta
        self.headers = headers

    def as_response(self, *, request_path: str, method: str) -> JSONResponse:
        return to_response(
            message=self.message,
            code=self.code,
            status_code=self.http_status,
            request_path=request_path,
            method=method,
            meta=self.meta,
            headers=self.headers,
        )


class ValidationAppError(AppError):
    code = ErrorCode.VALIDATION_ERROR
    http_status = status.HTTP_400_BAD_REQUEST
    default_message = "Request validation failed."


class NotFoundError(AppError):
    code = ErrorCode.NOT_FOUND
    http_status = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found."


class DependencyError(AppError):
    """The document store or another backing service is unavailable."""

    code = ErrorCode.DEPENDENCY_ERROR
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Upstream service is unavailable."


class InternalServerError(AppError):
    pass


class RateLimitedError(AppError):
    code = ErrorCode.RATE_LIMITED
    http_status = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests. Please try again later."

    def __init__(
        self,
        message: str | None = None,
        *,
        retry_after_ms: int | None = None,
        retry_after_header: str | None = None,
    ) -> None:
        super().__init__(
            message,
            meta=None if retry_after_ms is None else {"retry_after_ms": max(0, retry_after_ms)},
            headers={"Retry-After": retry_after_header} if retry_after_header else None,
        )


def to_response(
    *,
    message: str,
    code: ErrorCode,
    status_code: int,
    request_path: str,
    method: str,
    meta: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    """Render an error envelope and log it at a level matching the status."""

    error: dict[str, Any] = {"code": code.value, "message": message}
    if meta:
        error["meta"] = dict(meta)

    if status_code >= 500:
        level = logging.ERROR
    elif status_code == status.HTTP_429_TOO_MANY_REQUESTS:
        level = logging.WARNING
    else:
        level = logging.INFO
    log_event(
        _logger,
        "api.error",
        level=level,
        component="api",
        status="error",
        code=code.value,
        http_status=status_code,
        path=request_path,
        method=method,
    )
    return JSONResponse(
        status_code=status_code,
        content={"ok": False, "error": error},
        headers=dict(headers) if headers else None,
    )


__all__ = [
    "AppError",
    "DependencyError",
    "ErrorCode",
    "InternalServerError",
    "NotFoundError",
    "RateLimitedError",
    "ValidationAppError",
    "to_response",
]
