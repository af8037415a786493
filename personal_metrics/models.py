"""Database models for persisted widget documents."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import JSON, Column, DateTime, String

from personal_metrics.db import Base


def _utcnow() -> datetime:
    """Return a timezone-aware UTC timestamp for ORM defaults."""

    return datetime.now(UTC)


class WidgetDocument(Base):
    """A JSON document addressed by ``(collection, doc_id)``.

    Each provider writes raw upstream snapshots and its assembled widget
    content into its own collection; writes replace the whole payload.
    """

    __tablename__ = "widget_documents"

    collection = Column(String(64), primary_key=True)
    doc_id = Column(String(128), primary_key=True)
    payload = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
