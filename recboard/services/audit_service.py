# SPDX-License-Identifier: Apache-2.0
"""Append-only audit trail with chained hashes."""
from __future__ import annotations

import json

from pydantic_core import to_jsonable_python
from sqlmodel import Session, select

from recboard.config import INITIAL_HASH
from recboard.core.context import Actor
from recboard.core.security import sha3_256_hex
from recboard.models import AuditLog
from recboard.store import RecordStore, coerce_timestamp, utcnow


def _entry_hash(entry: AuditLog) -> str:
    payload = (
        f"{entry.action_type}{entry.actor_id}{entry.details}"
        f"{coerce_timestamp(entry.created_at).isoformat()}{entry.previous_hash}"
    )
    return sha3_256_hex(payload)


def write_audit_log(
    session: Session,
    protocol_id: str | None,
    action_type: str,
    actor: Actor,
    details: dict,
) -> AuditLog:
    """Append-only Audit Log: previous_hash chain, entry_hash = SHA3-256(...)."""
    last = session.exec(
        select(AuditLog).where(AuditLog.protocol_id == protocol_id).order_by(AuditLog.id.desc()).limit(1)
    ).first()
    previous_hash = last.entry_hash if last else INITIAL_HASH
    entry = AuditLog(
        protocol_id=protocol_id,
        action_type=action_type,
        actor_id=actor.id,
        actor_role=actor.role,
        details=json.dumps(to_jsonable_python(details), sort_keys=True),
        previous_hash=previous_hash,
        created_at=utcnow(),
    )
    entry.entry_hash = _entry_hash(entry)
    session.add(entry)
    return entry


def record(store: RecordStore, protocol_id: str | None, action_type: str, actor: Actor, details: dict) -> None:
    """Write an audit entry inside the caller's store transaction."""
    with store.transaction() as tx:
        write_audit_log(tx.session, protocol_id, action_type, actor, details)


def audit_trail(store: RecordStore, protocol_id: str) -> list[dict]:
    with store.transaction() as tx:
        entries = tx.session.exec(
            select(AuditLog).where(AuditLog.protocol_id == protocol_id).order_by(AuditLog.id.asc())
        ).all()
        return [
            {
                "id": e.id,
                "action_type": e.action_type,
                "actor_id": e.actor_id,
                "actor_role": e.actor_role,
                "details": json.loads(e.details),
                "previous_hash": e.previous_hash,
                "entry_hash": e.entry_hash,
                "created_at": coerce_timestamp(e.created_at).isoformat(),
            }
            for e in entries
        ]


def verify_audit_chain(store: RecordStore, protocol_id: str) -> dict:
    """Recompute every hash of one protocol's chain and report the first break."""
    with store.transaction() as tx:
        entries = tx.session.exec(
            select(AuditLog).where(AuditLog.protocol_id == protocol_id).order_by(AuditLog.id.asc())
        ).all()
        previous = INITIAL_HASH
        for e in entries:
            if e.previous_hash != previous or _entry_hash(e) != e.entry_hash:
                return {"valid": False, "entries": len(entries), "broken_at": e.id}
            previous = e.entry_hash
        return {"valid": True, "entries": len(entries), "broken_at": None}
