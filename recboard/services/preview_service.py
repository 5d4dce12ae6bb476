# SPDX-License-Identifier: Apache-2.0
"""Document preview: raw blobs, archive entry listing and extraction."""
from __future__ import annotations

import logging
import mimetypes
import threading
import zipfile
import zlib
from dataclasses import dataclass, field

from cachetools import TTLCache

from recboard.config import settings
from recboard.core.exceptions import ValidationFailed
from recboard.core.security import secure_filename
from recboard.services import archive
from recboard.services.blob_storage import LocalBlobStorage, get_blob_storage

_logger = logging.getLogger("recboard")


@dataclass
class PreviewResult:
    storage_path: str
    file_name: str | None = None
    content: bytes | None = None
    media_type: str = "application/octet-stream"
    entries: list[dict] = field(default_factory=list)

    @property
    def is_listing(self) -> bool:
        return self.content is None


def legacy_path(protocol_id: str, file_name: str) -> str:
    return f"protocols/{protocol_id}/{secure_filename(file_name)}"


def _media_type(name: str) -> str:
    return mimetypes.guess_type(name)[0] or "application/octet-stream"


class PreviewService:
    """Extracted entries are cached (bounded, TTL) and evicted when the blob changes."""

    def __init__(self, blobs: LocalBlobStorage, maxsize: int | None = None, ttl: int | None = None):
        self.blobs = blobs
        self._cache: TTLCache = TTLCache(
            maxsize=maxsize or settings.preview_cache_size,
            ttl=ttl or settings.preview_cache_ttl_seconds,
        )
        self._lock = threading.Lock()
        blobs.add_listener(self.invalidate)

    def invalidate(self, storage_path: str) -> None:
        with self._lock:
            for key in [k for k in self._cache if k[0] == storage_path]:
                self._cache.pop(key, None)

    def cached(self, storage_path: str, entry: str) -> bool:
        with self._lock:
            return (storage_path, entry) in self._cache

    def _extract(self, storage_path: str, data: bytes, entry: str) -> bytes:
        key = (storage_path, entry)
        with self._lock:
            content = self._cache.get(key)
        if content is None:
            content = archive.extract(data, entry)
            with self._lock:
                self._cache[key] = content
        return content

    def preview(
        self,
        storage_path: str | None = None,
        protocol_id: str | None = None,
        file_name: str | None = None,
        entry: str | None = None,
        auto: bool = False,
    ) -> PreviewResult:
        """Content for a blob, one archive entry, or the archive's entry list."""
        if not storage_path:
            if not (protocol_id and file_name):
                raise ValidationFailed(
                    [{"field": "storage_path", "message": "Give storage_path or protocol_id with file_name"}]
                )
            storage_path = legacy_path(protocol_id, file_name)
        data = self.blobs.get(storage_path)
        if not archive.is_archive(data):
            name = file_name or storage_path.rsplit("/", 1)[-1]
            return PreviewResult(storage_path, name, data, _media_type(name))
        try:
            return self._preview_archive(storage_path, data, entry, auto)
        except (zipfile.BadZipFile, zlib.error) as exc:
            _logger.warning("Corrupt archive at %s: %s", storage_path, exc)
            raise ValidationFailed(
                [{"field": "storage_path", "message": f"Stored document {storage_path} is not a readable archive"}]
            ) from exc

    def _preview_archive(self, storage_path: str, data: bytes, entry: str | None, auto: bool) -> PreviewResult:
        entries = archive.list_entries(data)
        names = {e["name"] for e in entries}
        target = entry if entry in names else None
        if target is None and auto and not entry:
            target = archive.first_previewable(entries)
        if target is None:
            if entry:
                _logger.info("Entry %s not in %s; returning listing", entry, storage_path)
            return PreviewResult(storage_path, entries=entries)
        content = self._extract(storage_path, data, target)
        return PreviewResult(storage_path, target, content, _media_type(target))


_default_service: PreviewService | None = None


def get_preview_service() -> PreviewService:
    global _default_service
    if _default_service is None:
        _default_service = PreviewService(get_blob_storage())
    return _default_service
