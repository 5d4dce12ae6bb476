# SPDX-License-Identifier: Apache-2.0
"""Document uploads, chairperson review, requests and re-uploads."""
import pytest

from recboard.core.context import Actor
from recboard.core.exceptions import (
    CommentRequired,
    InvalidTransition,
    PermissionDenied,
    UnknownRequest,
    ValidationFailed,
)
from recboard.services import archive, document_service

PDF = b"%PDF-1.4 consent form"


@pytest.fixture
def document(store, blobs, proponent, protocol):
    return document_service.create_document(
        store, blobs, proponent, protocol.id, "Informed consent", "consent.pdf", PDF, category="consent",
    )


def test_upload_creates_version_one(store, blobs, document):
    assert document.status == "pending"
    assert document.version == 1
    assert len(document.versions) == 1
    assert document.storage_path.endswith("_consent.pdf.zip")
    stored = blobs.get(document.storage_path)
    assert archive.is_archive(stored)
    assert archive.extract(stored, "consent.pdf") == PDF


def test_upload_requires_owner(store, blobs, protocol):
    stranger = Actor(id="prop-2", role="proponent")
    with pytest.raises(PermissionDenied):
        document_service.create_document(store, blobs, stranger, protocol.id, "X", "x.pdf", PDF)


def test_empty_upload_rejected(store, blobs, proponent, protocol):
    with pytest.raises(ValidationFailed):
        document_service.create_document(store, blobs, proponent, protocol.id, "X", "x.pdf", b"")
    assert document_service.list_documents(store, protocol.id) == []


def test_revise_needs_comment_then_reupload(store, blobs, chair, proponent, protocol, document):
    """Revise without comment fails; with comment it opens a request fulfilled by version 2."""
    with pytest.raises(CommentRequired):
        document_service.review_document(store, chair, protocol.id, document.id, "revise", "")
    assert document_service.get_document(store, protocol.id, document.id).status == "pending"

    revised = document_service.review_document(store, chair, protocol.id, document.id, "revise", "fix §3")
    assert revised.status == "revise"
    assert revised.comment == "fix §3"
    assert revised.request_id

    v2 = document_service.fulfill_request(
        store, blobs, proponent, protocol.id, revised.request_id, "consent-v2.pdf", b"%PDF-1.4 v2",
    )
    assert v2.id == document.id
    assert v2.version == 2
    assert v2.status == "pending"
    assert [v.version for v in v2.versions] == [1, 2]
    assert v2.versions[0].comment == "fix §3"
    assert v2.versions[0].status == "revise"
    assert v2.storage_path != document.storage_path
    assert blobs.exists(document.storage_path)


def test_rework_needs_comment(store, chair, protocol, document):
    with pytest.raises(CommentRequired):
        document_service.review_document(store, chair, protocol.id, document.id, "rework", "   ")


def test_accept_and_reject_without_comment(store, blobs, chair, proponent, protocol, document):
    accepted = document_service.review_document(store, chair, protocol.id, document.id, "accepted")
    assert accepted.status == "accepted"
    other = document_service.create_document(store, blobs, proponent, protocol.id, "CV", "cv.pdf", PDF)
    assert document_service.review_document(store, chair, protocol.id, other.id, "rejected").status == "rejected"


def test_review_only_pending(store, chair, protocol, document):
    document_service.review_document(store, chair, protocol.id, document.id, "accepted")
    with pytest.raises(InvalidTransition):
        document_service.review_document(store, chair, protocol.id, document.id, "revise", "again")


def test_only_chair_reviews(store, proponent, protocol, document):
    with pytest.raises(PermissionDenied):
        document_service.review_document(store, proponent, protocol.id, document.id, "accepted")


def test_unknown_request_creates_nothing(store, blobs, proponent, protocol, document):
    with pytest.raises(UnknownRequest):
        document_service.fulfill_request(store, blobs, proponent, protocol.id, "no-such-request", "a.pdf", PDF)
    docs = document_service.list_documents(store, protocol.id)
    assert [d.id for d in docs] == [document.id]
    assert docs[0].version == 1


def test_fulfilled_request_cannot_be_reused(store, blobs, chair, proponent, protocol, document):
    revised = document_service.review_document(store, chair, protocol.id, document.id, "rework", "redo")
    document_service.fulfill_request(store, blobs, proponent, protocol.id, revised.request_id, "b.pdf", PDF)
    with pytest.raises(InvalidTransition):
        document_service.fulfill_request(store, blobs, proponent, protocol.id, revised.request_id, "c.pdf", PDF)


def test_document_request_lifecycle(store, blobs, chair, proponent, protocol):
    requested = document_service.request_document(store, chair, protocol.id, "Ethics training certificate")
    assert requested.status == "requested"
    assert requested.version == 0
    assert requested.versions == []

    uploaded = document_service.fulfill_request(
        store, blobs, proponent, protocol.id, requested.request_id, "cert.pdf", PDF,
    )
    assert uploaded.status == "pending"
    assert uploaded.version == 1
    with pytest.raises(InvalidTransition):
        document_service.cancel_request(store, chair, protocol.id, uploaded.id)


def test_cancel_open_request(store, chair, protocol):
    requested = document_service.request_document(store, chair, protocol.id, "Budget")
    document_service.cancel_request(store, chair, protocol.id, requested.id)
    assert document_service.list_documents(store, protocol.id) == []


def test_status_summary(store, chair, protocol, document):
    document_service.request_document(store, chair, protocol.id, "Budget")
    summary = document_service.document_status_summary(store, protocol.id)
    assert summary["pending"] == 1
    assert summary["requested"] == 1
    assert summary["total"] == 2


def _blob_files(blobs):
    return sorted(p.name for p in blobs.base_dir.rglob("*") if p.is_file())


def test_rejected_uploads_leave_no_blobs(store, blobs, proponent, protocol, document):
    before = _blob_files(blobs)
    stranger = Actor(id="prop-2", role="proponent")
    with pytest.raises(PermissionDenied):
        document_service.create_document(store, blobs, stranger, protocol.id, "X", "x.pdf", PDF)
    with pytest.raises(UnknownRequest):
        document_service.fulfill_request(store, blobs, proponent, protocol.id, "no-such-request", "a.pdf", PDF)
    assert _blob_files(blobs) == before


def test_failed_record_write_removes_blob(store, blobs, proponent, protocol, monkeypatch):
    def broken_audit(*args, **kwargs):
        raise RuntimeError("audit table locked")

    monkeypatch.setattr(document_service.audit_service, "record", broken_audit)
    with pytest.raises(RuntimeError):
        document_service.create_document(store, blobs, proponent, protocol.id, "CV", "cv.pdf", PDF)
    assert _blob_files(blobs) == []
    assert document_service.list_documents(store, protocol.id) == []
