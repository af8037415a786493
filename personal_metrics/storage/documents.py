"""Document persistence for raw upstream snapshots and widget content."""

from __future__ import annotations

from collections.abc import Mapping
import copy
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from personal_metrics.db import SessionFactory, run_session
from personal_metrics.logging import get_logger
from personal_metrics.models import WidgetDocument

logger = get_logger(__name__)


class StoreError(RuntimeError):
    """Raised when a document could not be read or written."""

    def __init__(self, message: str, *, collection: str, doc_id: str) -> None:
        super().__init__(message)
        self.collection = collection
        self.doc_id = doc_id


class DocumentStore(Protocol):
    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Return the stored document or ``None`` when it does not exist."""

    async def set(self, collection: str, doc_id: str, value: Mapping[str, Any]) -> None:
        """Replace the stored document with ``value``."""


class SqlDocumentStore:
    """:class:`DocumentStore` backed by the ``widget_documents`` table."""

    def __init__(self, *, session_factory: SessionFactory | None = None) -> None:
        self._session_factory = session_factory

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        def _load(session: Session) -> dict[str, Any] | None:
            record = session.get(WidgetDocument, (collection, doc_id))
            if record is None:
                return None
            return copy.deepcopy(record.payload)

        try:
            return await run_session(_load, factory=self._session_factory)
        except SQLAlchemyError as exc:
            logger.error("Failed to read document %s/%s: %s", collection, doc_id, exc)
            raise StoreError(
                f"Failed to read {collection}/{doc_id}", collection=collection, doc_id=doc_id
            ) from exc

    async def set(self, collection: str, doc_id: str, value: Mapping[str, Any]) -> None:
        payload = copy.deepcopy(dict(value))

        def _store(session: Session) -> None:
            record = session.get(WidgetDocument, (collection, doc_id))
            if record is None:
                session.add(WidgetDocument(collection=collection, doc_id=doc_id, payload=payload))
            else:
                record.payload = payload

        try:
            await run_session(_store, factory=self._session_factory)
        except (SQLAlchemyError, TypeError, ValueError) as exc:
            logger.error("Failed to write document %s/%s: %s", collection, doc_id, exc)
            raise StoreError(
                f"Failed to write {collection}/{doc_id}", collection=collection, doc_id=doc_id
            ) from exc


__all__ = ["DocumentStore", "SqlDocumentStore", "StoreError"]
