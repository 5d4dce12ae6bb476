# SPDX-License-Identifier: Apache-2.0
"""Local filesystem blob storage for uploaded documents."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from recboard.config import UPLOADS_DIR
from recboard.core.exceptions import NotFoundError, ValidationFailed

_logger = logging.getLogger("recboard.storage")


class LocalBlobStorage:
    """Stores bytes under ``base_dir``; no versioning of its own."""

    def __init__(self, base_dir: Path | str = UPLOADS_DIR):
        self.base_dir = Path(base_dir)
        self._listeners: list[Callable[[str], None]] = []

    def add_listener(self, callback: Callable[[str], None]) -> None:
        """Call ``callback(path)`` whenever a blob is written or removed."""
        self._listeners.append(callback)

    def _resolve(self, path: str) -> Path:
        base = self.base_dir.resolve()
        target = (base / path.lstrip("/")).resolve()
        try:
            target.relative_to(base)
        except ValueError:
            raise ValidationFailed([{"field": "storage_path", "message": "Path escapes the storage root"}])
        return target

    def _changed(self, path: str) -> None:
        for callback in self._listeners:
            callback(path)

    def put(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        _logger.info("Stored blob %s (%d bytes)", path, len(data))
        self._changed(path)
        return path

    def get(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise NotFoundError(f"Blob not found: {path}", storage_path=path)
        return target.read_bytes()

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def delete(self, path: str) -> bool:
        target = self._resolve(path)
        if not target.is_file():
            return False
        target.unlink()
        self._changed(path)
        return True


_default_storage: LocalBlobStorage | None = None


def get_blob_storage() -> LocalBlobStorage:
    global _default_storage
    if _default_storage is None:
        _default_storage = LocalBlobStorage()
    return _default_storage
