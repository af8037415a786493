"""Retry decisions and backoff helpers for upstream API calls."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
import json
from typing import Any, Awaitable, Callable, TypeVar

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({429, 503})

# Google APIs report daily quota exhaustion as a 429 carrying this status and
# a "Quota exceeded ..." message. Matching depends on upstream wording.
QUOTA_EXHAUSTED_STATUS = "RESOURCE_EXHAUSTED"
QUOTA_EXHAUSTED_MESSAGE = "quota exceeded"


class RetryAction(str, Enum):
    RETRY = "retry"
    FAIL = "fail"


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of :func:`decide` for a single failed attempt."""

    action: RetryAction
    delay_ms: int | None = None

    @property
    def should_retry(self) -> bool:
        return self.action is RetryAction.RETRY


AsyncFactory = Callable[[], Awaitable[T]]
RetryHook = Callable[[Exception, int, RetryDecision], None]


def backoff_delay_ms(attempt: int) -> int:
    """Return the delay before the attempt following ``attempt`` (1-based)."""

    return (2 ** max(0, int(attempt))) * 1000


def parse_error_body(body: Any) -> Mapping[str, Any] | None:
    """Return the structured ``error`` object from an API error body, if any.

    Accepts raw text, bytes or an already decoded mapping. Anything that cannot
    be interpreted yields ``None``.
    """

    if body is None:
        return None
    payload: Any = body
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError:
            return None
    if not isinstance(payload, Mapping):
        return None
    error = payload.get("error")
    if isinstance(error, Mapping):
        return error
    return payload


def is_quota_exhausted(body: Any) -> bool:
    error = parse_error_body(body)
    if error is None:
        return False
    status = error.get("status")
    message = error.get("message")
    if not isinstance(status, str) or not isinstance(message, str):
        return False
    return status.upper() == QUOTA_EXHAUSTED_STATUS and QUOTA_EXHAUSTED_MESSAGE in message.lower()


def decide(error: Exception, attempt: int, max_attempts: int) -> RetryDecision:
    """Classify a failed attempt as retryable (with a delay) or terminal."""

    status_code = getattr(error, "status_code", None)
    if status_code not in RETRYABLE_STATUS_CODES:
        return RetryDecision(RetryAction.FAIL)
    if status_code == 429 and is_quota_exhausted(getattr(error, "body", None)):
        return RetryDecision(RetryAction.FAIL)
    if attempt >= max_attempts:
        return RetryDecision(RetryAction.FAIL)
    return RetryDecision(RetryAction.RETRY, delay_ms=backoff_delay_ms(attempt))


async def retry_async(
    async_fn: AsyncFactory[T],
    *,
    max_attempts: int,
    on_retry: RetryHook | None = None,
) -> T:
    """Execute ``async_fn`` until it succeeds or :func:`decide` says to stop.

    The last error is re-raised once the policy fails the call.
    """

    attempts = max(1, int(max_attempts))
    for attempt in range(1, attempts + 1):
        try:
            return await async_fn()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            decision = decide(exc, attempt, attempts)
            if not decision.should_retry:
                raise
            if on_retry is not None:
                on_retry(exc, attempt, decision)
            await asyncio.sleep((decision.delay_ms or 0) / 1000.0)
    # ``for`` loop must return or raise before reaching here.
    raise RuntimeError("Retry loop exited unexpectedly")


__all__ = [
    "QUOTA_EXHAUSTED_MESSAGE",
    "QUOTA_EXHAUSTED_STATUS",
    "RETRYABLE_STATUS_CODES",
    "RetryAction",
    "RetryDecision",
    "backoff_delay_ms",
    "decide",
    "is_quota_exhausted",
    "parse_error_body",
    "retry_async",
]
