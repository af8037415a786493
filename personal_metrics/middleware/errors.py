"""Exception handlers rendering the canonical error envelope."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from personal_metrics.errors import AppError, ErrorCode, InternalServerError, to_response
from personal_metrics.logging import get_logger

_logger = get_logger(__name__)

_STATUS_CODES: dict[int, tuple[ErrorCode, str]] = {
    status.HTTP_400_BAD_REQUEST: (ErrorCode.VALIDATION_ERROR, "Request validation failed."),
    status.HTTP_404_NOT_FOUND: (ErrorCode.NOT_FOUND, "Resource not found."),
    status.HTTP_405_METHOD_NOT_ALLOWED: (ErrorCode.VALIDATION_ERROR, "Method not allowed."),
    status.HTTP_429_TOO_MANY_REQUESTS: (ErrorCode.RATE_LIMITED, "Too many requests."),
    status.HTTP_502_BAD_GATEWAY: (ErrorCode.DEPENDENCY_ERROR, "Upstream service is unavailable."),
    status.HTTP_503_SERVICE_UNAVAILABLE: (
        ErrorCode.DEPENDENCY_ERROR,
        "Upstream service is unavailable.",
    ),
}


def _extract_detail_message(detail: Any, default: str) -> str:
    if isinstance(detail, str) and detail.strip():
        return detail
    if isinstance(detail, Mapping):
        for key in ("message", "detail", "error"):
            candidate = detail.get(key)
            if isinstance(candidate, str) and candidate.strip():
                return candidate
    return default


async def _handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    status_code = exc.status_code or status.HTTP_500_INTERNAL_SERVER_ERROR
    code, default_message = _STATUS_CODES.get(
        status_code, (ErrorCode.INTERNAL_ERROR, "Request could not be completed.")
    )
    return to_response(
        message=_extract_detail_message(exc.detail, default_message),
        code=code,
        status_code=status_code,
        request_path=request.url.path,
        method=request.method,
        headers=exc.headers,
    )


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [
        {
            "name": ".".join(str(part) for part in error.get("loc", ()) if part != "path") or "?",
            "message": error.get("msg", "Invalid input."),
        }
        for error in exc.errors()
    ]
    return to_response(
        message="Request validation failed.",
        code=ErrorCode.VALIDATION_ERROR,
        status_code=status.HTTP_400_BAD_REQUEST,
        request_path=request.url.path,
        method=request.method,
        meta={"fields": fields} if fields else None,
    )


async def _handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    return exc.as_response(request_path=request.url.path, method=request.method)


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    _logger.exception("Unhandled application error", exc_info=exc)
    error = InternalServerError()
    return error.as_response(request_path=request.url.path, method=request.method)


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the canonical exception handlers for the API."""

    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)
    app.add_exception_handler(AppError, _handle_app_error)
    app.add_exception_handler(Exception, _handle_unexpected_error)


__all__ = ["setup_exception_handlers"]
