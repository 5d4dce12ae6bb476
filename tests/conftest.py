# SPDX-License-Identifier: Apache-2.0
"""pytest fixtures: isolated in-memory store, fake mailer, temp blob storage."""
import smtplib
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from recboard.core.context import Actor
from recboard.core.security import get_limiter
from recboard.database import create_db_and_tables, get_store, make_engine
from recboard.main import app
from recboard.services import assignment_service, protocol_service
from recboard.services.blob_storage import LocalBlobStorage, get_blob_storage
from recboard.services.notification_service import Mailer, get_mailer
from recboard.services.preview_service import PreviewService, get_preview_service
from recboard.store import RecordStore

CREATED = datetime(2025, 1, 2, 9, 0, tzinfo=timezone.utc)
ACCEPTED = datetime(2025, 1, 3, 9, 0, tzinfo=timezone.utc)


class FakeMailer(Mailer):
    """Records messages instead of talking SMTP; ``fail=True`` simulates an outage."""

    def __init__(self, fail: bool = False):
        super().__init__()
        self.fail = fail
        self.sent = []

    def send(self, message) -> str:
        if self.fail:
            raise smtplib.SMTPException("connection refused")
        self.sent.append(message)
        return f"<msg-{len(self.sent)}@test>"


@pytest.fixture
def store():
    engine = make_engine("sqlite://")
    create_db_and_tables(engine)
    return RecordStore(engine)


@pytest.fixture
def blobs(tmp_path):
    return LocalBlobStorage(tmp_path / "blobs")


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def chair():
    return Actor(id="chair-1", role="chairperson", name="Dr. Chair", email="chair@rec.test")


@pytest.fixture
def proponent():
    return Actor(id="prop-1", role="proponent", name="Juan Dela Cruz", email="juan@uni.test")


@pytest.fixture
def reviewer_actor():
    return Actor(id="r1", role="reviewer", name="Ana Reyes", email="ana@rec.test")


@pytest.fixture
def reviewers(store, chair):
    """Three registered reviewers with ids r1, r2, r3."""
    return [
        assignment_service.save_reviewer(store, chair, "Ana Reyes", "ana@rec.test", reviewer_id="r1"),
        assignment_service.save_reviewer(store, chair, "Ben Santos", "ben@rec.test", reviewer_id="r2"),
        assignment_service.save_reviewer(store, chair, "Cora Lim", "cora@rec.test", reviewer_id="r3"),
    ]


@pytest.fixture
def protocol(store, proponent):
    return protocol_service.create_protocol(
        store, proponent, "Sleep and learning in college students", "Juan Dela Cruz", now=CREATED,
    )


@pytest.fixture
def accepted(store, chair, protocol):
    return protocol_service.advance_status(store, chair, protocol.id, "accepted", now=ACCEPTED)


def headers(actor: Actor) -> dict:
    return {
        "X-Actor-Id": actor.id,
        "X-Actor-Role": actor.role,
        "X-Actor-Name": actor.name,
        "X-Actor-Email": actor.email,
    }


@pytest.fixture
def client(store, blobs, mailer):
    """FastAPI test client wired to the isolated store."""
    preview = PreviewService(blobs)
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_blob_storage] = lambda: blobs
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_preview_service] = lambda: preview
    get_limiter().enabled = False
    yield TestClient(app)
    app.dependency_overrides.clear()
    get_limiter().enabled = True
