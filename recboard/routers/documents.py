# SPDX-License-Identifier: Apache-2.0
"""Document upload, review, requests and re-upload against a request."""
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from starlette.concurrency import run_in_threadpool

from recboard.config import MAX_UPLOAD_BYTES, MAX_UPLOAD_MB
from recboard.core.context import Actor, get_actor
from recboard.core.security import rate_limit, secure_filename
from recboard.database import get_store
from recboard.schemas import DocumentRequestCreate, DocumentReview
from recboard.services import document_service, protocol_service
from recboard.services.blob_storage import LocalBlobStorage, get_blob_storage
from recboard.store import RecordStore

router = APIRouter(prefix="/protocols/{protocol_id}", tags=["documents"])


async def _read_upload(file: UploadFile) -> tuple[str, bytes]:
    contents = await file.read()
    if len(contents) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail=f"File too large (max {MAX_UPLOAD_MB} MB)")
    return secure_filename(file.filename or "document"), contents


@router.get("/documents")
def documents_list(protocol_id: str, status: str | None = None, store: RecordStore = Depends(get_store)):
    protocol_service.get_protocol(store, protocol_id)
    return [d.model_dump(mode="json") for d in document_service.list_documents(store, protocol_id, status)]


@router.get("/documents/summary")
def documents_summary(protocol_id: str, store: RecordStore = Depends(get_store)):
    """Document count per status."""
    protocol_service.get_protocol(store, protocol_id)
    return document_service.document_status_summary(store, protocol_id)


@router.get("/documents/{document_id}")
def documents_get(protocol_id: str, document_id: str, store: RecordStore = Depends(get_store)):
    return document_service.get_document(store, protocol_id, document_id).model_dump(mode="json")


@router.get("/documents/{document_id}/versions")
def documents_versions(protocol_id: str, document_id: str, store: RecordStore = Depends(get_store)):
    return [
        v.model_dump(mode="json")
        for v in document_service.document_versions(store, protocol_id, document_id)
    ]


@router.post("/documents", status_code=201)
@rate_limit("60/minute")
async def documents_upload(
    request: Request,
    protocol_id: str,
    file: UploadFile = File(...),
    title: str = Form(""),
    category: str = Form("supplementary"),
    description: str = Form(""),
    store: RecordStore = Depends(get_store),
    blobs: LocalBlobStorage = Depends(get_blob_storage),
    actor: Actor = Depends(get_actor),
):
    """New logical document at version 1."""
    file_name, contents = await _read_upload(file)
    document = await run_in_threadpool(
        document_service.create_document,
        store,
        blobs,
        actor,
        protocol_id,
        title=title,
        file_name=file_name,
        content=contents,
        category=category,
        description=description,
    )
    return document.model_dump(mode="json")


@router.post("/documents/{document_id}/review")
def documents_review(
    protocol_id: str,
    document_id: str,
    body: DocumentReview,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    document = document_service.review_document(
        store, actor, protocol_id, document_id, body.status, body.comment,
    )
    return document.model_dump(mode="json")


@router.post("/document_requests", status_code=201)
def document_requests_create(
    protocol_id: str,
    body: DocumentRequestCreate,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    """Chairperson asks the proponent for a new document."""
    document = document_service.request_document(
        store,
        actor,
        protocol_id,
        title=body.title,
        category=body.category,
        description=body.description,
        due_date=body.due_date,
        urgent=body.urgent,
    )
    return document.model_dump(mode="json")


@router.delete("/document_requests/{document_id}", status_code=204)
def document_requests_cancel(
    protocol_id: str,
    document_id: str,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    document_service.cancel_request(store, actor, protocol_id, document_id)


@router.post("/document_requests/{request_id}/fulfill")
@rate_limit("60/minute")
async def document_requests_fulfill(
    request: Request,
    protocol_id: str,
    request_id: str,
    file: UploadFile = File(...),
    store: RecordStore = Depends(get_store),
    blobs: LocalBlobStorage = Depends(get_blob_storage),
    actor: Actor = Depends(get_actor),
):
    """Upload a new version against a request id."""
    file_name, contents = await _read_upload(file)
    document = await run_in_threadpool(
        document_service.fulfill_request,
        store,
        blobs,
        actor,
        protocol_id,
        request_id,
        file_name=file_name,
        content=contents,
    )
    return document.model_dump(mode="json")
