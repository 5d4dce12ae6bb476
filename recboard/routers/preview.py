# SPDX-License-Identifier: Apache-2.0
"""Document preview endpoint."""
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from recboard.core.security import rate_limit
from recboard.services.preview_service import PreviewService, get_preview_service

router = APIRouter(tags=["preview"])


def _content_disposition(file_name: str) -> str:
    fallback = file_name.encode("ascii", "replace").decode("ascii").replace("?", "_").replace('"', "_")
    if fallback == file_name:
        return f'inline; filename="{file_name}"'
    return f"inline; filename=\"{fallback}\"; filename*=utf-8''{quote(file_name)}"


@router.get("/preview")
@rate_limit("120/minute")
def preview(
    request: Request,
    storage_path: str | None = None,
    protocol_id: str | None = None,
    file_name: str | None = None,
    entry: str | None = None,
    auto: bool = Query(False, description="Pick the first previewable entry of an archive"),
    service: PreviewService = Depends(get_preview_service),
):
    """Blob content, one archive entry, or the archive's entry list."""
    result = service.preview(
        storage_path=storage_path,
        protocol_id=protocol_id,
        file_name=file_name,
        entry=entry,
        auto=auto,
    )
    if result.is_listing:
        return {"storage_path": result.storage_path, "entries": result.entries}
    return Response(
        content=result.content,
        media_type=result.media_type,
        headers={"Content-Disposition": _content_disposition(result.file_name or "document")},
    )
