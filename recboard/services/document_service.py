# SPDX-License-Identifier: Apache-2.0
"""Document uploads, chairperson review, document requests and re-uploads."""
from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, get_args

from recboard.core.context import Actor, require_chairperson, require_role
from recboard.core.exceptions import (
    CommentRequired,
    InvalidTransition,
    PermissionDenied,
    UnknownRequest,
    ValidationFailed,
)
from recboard.core.security import sanitize_text, secure_filename
from recboard.models import DocumentRecord, DocumentVersion
from recboard.models.entities import DocumentStatus
from recboard.services import archive, audit_service, paths, protocol_service
from recboard.services.blob_storage import LocalBlobStorage
from recboard.store import RecordStore, collection, new_id, utcnow

_logger = logging.getLogger("recboard")

REVIEW_OUTCOMES = {"accepted", "rejected", "rework", "revise"}
COMMENT_REQUIRED = {"rework", "revise"}
FULFILLABLE = {"requested", "rework", "revise"}


def storage_path_for(protocol_id: str, file_name: str) -> str:
    """Blob path for a new upload: protocol folder plus a unique sanitized name."""
    return f"protocols/{protocol_id}/{uuid.uuid4().hex[:12]}_{secure_filename(file_name)}.zip"


def _require_content(content: bytes) -> None:
    if not content:
        raise ValidationFailed([{"field": "file", "message": "Uploaded file is empty"}])


@contextmanager
def _staged_blob(blobs: LocalBlobStorage, protocol_id: str, file_name: str, content: bytes) -> Iterator[str]:
    """Store the archived upload for the enclosed unit of work; remove it if that work fails."""
    path = storage_path_for(protocol_id, file_name)
    blobs.put(path, archive.pack(secure_filename(file_name), content))
    try:
        yield path
    except BaseException:
        try:
            blobs.delete(path)
        except OSError:
            _logger.exception("Could not remove orphaned blob %s", path)
        raise


def _check_uploader(store: RecordStore, actor: Actor, protocol_id: str):
    require_role(actor, "proponent", "chairperson", action="uploading documents")
    protocol = protocol_service.get_protocol(store, protocol_id)
    if actor.role == "proponent" and protocol.owner_id != actor.id:
        raise PermissionDenied("Only the protocol owner may upload its documents")
    return protocol


def get_document(store: RecordStore, protocol_id: str, document_id: str) -> DocumentRecord:
    return store.require(paths.document(protocol_id, document_id), DocumentRecord, "Document")


def list_documents(store: RecordStore, protocol_id: str, status: str | None = None) -> list[DocumentRecord]:
    query = collection(paths.documents(protocol_id)).ordered("created_at")
    if status:
        query = query.where("status", "==", status)
    return store.query_models(query, DocumentRecord)


def document_versions(store: RecordStore, protocol_id: str, document_id: str) -> list[DocumentVersion]:
    return get_document(store, protocol_id, document_id).versions


def document_status_summary(store: RecordStore, protocol_id: str) -> dict:
    counts = {status: 0 for status in get_args(DocumentStatus)}
    documents = list_documents(store, protocol_id)
    for doc in documents:
        counts[doc.status] += 1
    counts["total"] = len(documents)
    return counts


def create_document(
    store: RecordStore,
    blobs: LocalBlobStorage,
    actor: Actor,
    protocol_id: str,
    title: str,
    file_name: str,
    content: bytes,
    category: str = "supplementary",
    description: str = "",
    now: datetime | None = None,
) -> DocumentRecord:
    """New logical document at version 1, status ``pending``."""
    now = now or utcnow()
    _require_content(content)
    with _staged_blob(blobs, protocol_id, file_name, content) as storage_path, store.transaction():
        _check_uploader(store, actor, protocol_id)
        document = DocumentRecord(
            protocol_id=protocol_id,
            title=sanitize_text(title, 300) or file_name,
            category=sanitize_text(category, 100) or "supplementary",
            description=sanitize_text(description),
            status="pending",
            version=1,
            storage_path=storage_path,
            file_name=file_name,
            versions=[
                DocumentVersion(
                    version=1,
                    storage_path=storage_path,
                    file_name=file_name,
                    uploaded_at=now,
                    uploaded_by=actor.id,
                )
            ],
            created_at=now,
            created_by=actor.id,
            updated_at=now,
        )
        document_id = store.create(paths.documents(protocol_id), document)
        audit_service.record(
            store, protocol_id, "document_uploaded", actor,
            {"document_id": document_id, "version": 1, "file_name": file_name},
        )
    _logger.info("Document %s uploaded to protocol %s", document_id, protocol_id)
    return get_document(store, protocol_id, document_id)


def review_document(
    store: RecordStore,
    actor: Actor,
    protocol_id: str,
    document_id: str,
    new_status: str,
    comment: str | None = None,
    now: datetime | None = None,
) -> DocumentRecord:
    """Chairperson verdict on a pending document; rework/revise need a comment."""
    require_chairperson(actor, "reviewing documents")
    if new_status not in REVIEW_OUTCOMES:
        raise ValidationFailed(
            [{"field": "status", "message": f"Must be one of {', '.join(sorted(REVIEW_OUTCOMES))}"}]
        )
    comment = sanitize_text(comment)
    if new_status in COMMENT_REQUIRED and not comment:
        raise CommentRequired(new_status)
    now = now or utcnow()
    with store.transaction():
        document = get_document(store, protocol_id, document_id)
        if document.status != "pending":
            raise InvalidTransition("Document", document.status, new_status)
        versions = [v.model_dump() for v in document.versions]
        if versions:
            versions[-1].update(status=new_status, comment=comment or None, reviewed_by=actor.id, reviewed_at=now)
        update = {
            "status": new_status,
            "comment": comment or None,
            "versions": versions,
            "updated_at": now,
        }
        if new_status in COMMENT_REQUIRED:
            update["request_id"] = document.request_id or new_id()
        store.write(
            paths.document(protocol_id, document_id), update, mode="merge", base_revision=document.revision,
        )
        audit_service.record(
            store, protocol_id, "document_reviewed", actor,
            {"document_id": document_id, "status": new_status, "version": document.version, "comment": comment},
        )
    _logger.info("Document %s on %s reviewed: %s", document_id, protocol_id, new_status)
    return get_document(store, protocol_id, document_id)


def request_document(
    store: RecordStore,
    actor: Actor,
    protocol_id: str,
    title: str,
    category: str = "supplementary",
    description: str = "",
    due_date: datetime | None = None,
    urgent: bool = False,
    now: datetime | None = None,
) -> DocumentRecord:
    """Placeholder document (version 0) the proponent fulfils by uploading."""
    require_chairperson(actor, "requesting documents")
    now = now or utcnow()
    with store.transaction():
        protocol_service.get_protocol(store, protocol_id)
        document = DocumentRecord(
            protocol_id=protocol_id,
            title=sanitize_text(title, 300),
            category=sanitize_text(category, 100) or "supplementary",
            description=sanitize_text(description),
            status="requested",
            version=0,
            request_id=new_id(),
            due_date=due_date,
            urgent=urgent,
            created_at=now,
            created_by=actor.id,
            updated_at=now,
        )
        document_id = store.create(paths.documents(protocol_id), document)
        audit_service.record(
            store, protocol_id, "document_requested", actor,
            {"document_id": document_id, "request_id": document.request_id, "title": document.title},
        )
    _logger.info("Document requested on protocol %s: %s", protocol_id, document.title)
    return get_document(store, protocol_id, document_id)


def cancel_request(store: RecordStore, actor: Actor, protocol_id: str, document_id: str) -> None:
    require_chairperson(actor, "cancelling document requests")
    with store.transaction():
        document = get_document(store, protocol_id, document_id)
        if document.status != "requested":
            raise InvalidTransition(
                "Document",
                document.status,
                "cancelled",
                f"Only open requests can be cancelled; document is '{document.status}'",
            )
        store.delete(paths.document(protocol_id, document_id))
        audit_service.record(
            store, protocol_id, "document_request_cancelled", actor,
            {"document_id": document_id, "request_id": document.request_id},
        )


def find_by_request(store: RecordStore, protocol_id: str, request_id: str) -> DocumentRecord | None:
    query = collection(paths.documents(protocol_id)).where("request_id", "==", request_id)
    found = store.query_models(query, DocumentRecord)
    return found[0] if found else None


def fulfill_request(
    store: RecordStore,
    blobs: LocalBlobStorage,
    actor: Actor,
    protocol_id: str,
    request_id: str,
    file_name: str,
    content: bytes,
    now: datetime | None = None,
) -> DocumentRecord:
    """Upload a new version against a request; same document, version + 1, back to pending."""
    now = now or utcnow()
    _require_content(content)
    with _staged_blob(blobs, protocol_id, file_name, content) as storage_path, store.transaction():
        _check_uploader(store, actor, protocol_id)
        document = find_by_request(store, protocol_id, request_id) if request_id else None
        if document is None:
            raise UnknownRequest(request_id)
        if document.status not in FULFILLABLE:
            raise InvalidTransition(
                "Document",
                document.status,
                "pending",
                f"Request {request_id} is not open; document is '{document.status}'",
            )
        version = document.version + 1
        versions = [v.model_dump() for v in document.versions]
        versions.append(
            DocumentVersion(
                version=version,
                storage_path=storage_path,
                file_name=file_name,
                uploaded_at=now,
                uploaded_by=actor.id,
            ).model_dump()
        )
        store.write(
            paths.document(protocol_id, document.id),
            {
                "status": "pending",
                "version": version,
                "storage_path": storage_path,
                "file_name": file_name,
                "versions": versions,
                "updated_at": now,
            },
            mode="merge",
            base_revision=document.revision,
        )
        audit_service.record(
            store, protocol_id, "document_request_fulfilled", actor,
            {"document_id": document.id, "request_id": request_id, "version": version},
        )
    _logger.info("Request %s on %s fulfilled with version %s", request_id, protocol_id, version)
    return get_document(store, protocol_id, document.id)
