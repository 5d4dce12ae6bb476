# SPDX-License-Identifier: Apache-2.0
"""DB connection and record store wiring."""
from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from recboard.config import DATABASE_URL, settings
from recboard.models import AuditLog, StoredRecord  # noqa: F401 - register all models with SQLModel.metadata
from recboard.store import RecordStore


def make_engine(url: str) -> Engine:
    """Engine for a URL; in-memory SQLite shares one connection across threads."""
    if not url.startswith("sqlite"):
        return create_engine(url)
    connect_args = {"check_same_thread": False}
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(url, connect_args=connect_args, poolclass=StaticPool)
    return create_engine(url, connect_args=connect_args)


engine = make_engine(DATABASE_URL)

_store: RecordStore | None = None


def create_db_and_tables(bind: Engine | None = None) -> None:
    """Create all tables."""
    SQLModel.metadata.create_all(bind or engine)


def make_store(bind: Engine | None = None) -> RecordStore:
    return RecordStore(bind or engine, stale_write_threshold_seconds=settings.stale_write_threshold_seconds)


def get_store() -> RecordStore:
    """Process-wide record store (for FastAPI Depends)."""
    global _store
    if _store is None:
        _store = make_store()
    return _store
