"""Object storage for downloaded widget media."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import os
from pathlib import Path
import tempfile
from typing import Protocol

from personal_metrics.logging import get_logger

logger = get_logger(__name__)


class UploadError(RuntimeError):
    """Raised when a single object could not be stored."""

    def __init__(self, key: str, message: str) -> None:
        super().__init__(message)
        self.key = key


@dataclass(slots=True, frozen=True)
class StoredObject:
    key: str
    size_bytes: int
    content_type: str | None = None


class MediaStore(Protocol):
    bucket: str

    async def list_keys(self) -> list[str]:
        """Return every stored object key in the bucket."""

    async def upload(self, key: str, data: bytes, content_type: str | None = None) -> StoredObject:
        """Store ``data`` under ``key`` or raise :class:`UploadError`."""


class LocalMediaStore:
    """Store objects on the local filesystem under ``root/bucket``.

    Keys are POSIX relative paths (``books/abc-thumbnail.jpg``). Writes go to a
    temporary file first and are moved into place, so readers never observe a
    partially written object.
    """

    def __init__(self, root: str | Path, bucket: str) -> None:
        self.bucket = bucket
        self.base_path = (Path(root) / bucket).resolve()

    def _resolve_path(self, key: str) -> Path:
        clean_key = Path(key).as_posix().lstrip("/")
        if not clean_key or clean_key == ".":
            raise UploadError(key, "Object key must not be empty")
        full_path = self.base_path / clean_key
        try:
            full_path.resolve().relative_to(self.base_path)
        except ValueError:
            raise UploadError(key, f"Invalid key: {key} (outside bucket)") from None
        return full_path

    def _list_keys_sync(self) -> list[str]:
        if not self.base_path.exists():
            return []
        keys = [
            path.relative_to(self.base_path).as_posix()
            for path in self.base_path.rglob("*")
            if path.is_file() and not path.name.startswith(".")
        ]
        return sorted(keys)

    def _write_sync(self, key: str, data: bytes, content_type: str | None) -> StoredObject:
        destination = self._resolve_path(key)
        destination.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(prefix=".upload-", dir=destination.parent)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(temp_path, destination)
        except Exception:
            try:
                os.unlink(temp_path)
            except FileNotFoundError:  # pragma: no cover - best effort cleanup
                pass
            raise
        return StoredObject(key=key, size_bytes=len(data), content_type=content_type)

    async def list_keys(self) -> list[str]:
        return await asyncio.to_thread(self._list_keys_sync)

    async def upload(self, key: str, data: bytes, content_type: str | None = None) -> StoredObject:
        try:
            stored = await asyncio.to_thread(self._write_sync, key, data, content_type)
        except UploadError:
            raise
        except OSError as exc:
            raise UploadError(key, f"Failed to store {key}: {exc}") from exc
        logger.debug("Stored media object %s (%d bytes)", key, stored.size_bytes)
        return stored


__all__ = ["LocalMediaStore", "MediaStore", "StoredObject", "UploadError"]
