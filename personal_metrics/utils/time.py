"""Time helpers."""

from __future__ import annotations

from datetime import UTC, datetime

__all__ = ["now_utc", "timestamp"]


def now_utc() -> datetime:
    """Return the current UTC time with timezone information."""

    return datetime.now(UTC)


def timestamp(value: datetime | None = None) -> str:
    """Return an ISO-8601 UTC timestamp suitable for persisted documents."""

    moment = value or now_utc()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat()
