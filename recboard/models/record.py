# SPDX-License-Identifier: Apache-2.0
"""SQL tables: the schemaless record store and the per-protocol audit chain.

Record bodies are JSON text keyed by slash path; typed views live in
``recboard.models.entities``. Audit rows are append-only and each one hashes
its predecessor within the same protocol.
"""
from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from recboard.config import INITIAL_HASH


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoredRecord(SQLModel, table=True):
    __tablename__ = "records"
    path: str = Field(primary_key=True)
    collection: str = Field(index=True)
    collection_name: str = Field(index=True)
    record_id: str = ""
    data: str = "{}"
    revision: int = 1
    created_at: datetime = Field(default_factory=_utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=_utcnow, sa_type=DateTime(timezone=True))


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_log"
    id: int | None = Field(default=None, primary_key=True)
    protocol_id: str | None = Field(default=None, index=True)
    action_type: str = Field(default="", index=True)
    actor_id: str = ""
    actor_role: str = ""
    details: str = "{}"
    previous_hash: str = INITIAL_HASH
    entry_hash: str = ""
    created_at: datetime = Field(default_factory=_utcnow, sa_type=DateTime(timezone=True))
