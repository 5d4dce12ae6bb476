# SPDX-License-Identifier: Apache-2.0
"""Single-file ZIP packaging for stored documents."""
from __future__ import annotations

import io
import zipfile
from pathlib import PurePosixPath

from recboard.config import ARCHIVE_COMPRESSION_LEVEL, PREVIEWABLE_EXTENSIONS

ZIP_MAGIC = b"PK\x03\x04"


def pack(file_name: str, content: bytes) -> bytes:
    """Compress one file into a ZIP container (DEFLATE)."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(
        buffer,
        mode="w",
        compression=zipfile.ZIP_DEFLATED,
        compresslevel=ARCHIVE_COMPRESSION_LEVEL,
    ) as archive:
        archive.writestr(file_name, content)
    return buffer.getvalue()


def is_archive(data: bytes) -> bool:
    return data[:4] == ZIP_MAGIC


def list_entries(data: bytes) -> list[dict]:
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return [
            {"name": info.filename, "size": info.file_size, "compressed_size": info.compress_size}
            for info in archive.infolist()
            if not info.is_dir()
        ]


def extract(data: bytes, entry: str) -> bytes:
    """Read one entry. Raises ``KeyError`` if it is not in the archive."""
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return archive.read(entry)


def is_previewable(name: str) -> bool:
    return PurePosixPath(name).suffix.lower() in PREVIEWABLE_EXTENSIONS


def first_previewable(entries: list[dict]) -> str | None:
    for entry in entries:
        if is_previewable(entry["name"]):
            return entry["name"]
    return None
