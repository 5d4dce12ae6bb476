# SPDX-License-Identifier: Apache-2.0
"""Protocol status transitions, permanent codes and chairperson decisions."""
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import get_args

from recboard.core.context import Actor, require_chairperson, require_role
from recboard.core.exceptions import InvalidTransition, ValidationFailed
from recboard.core.security import sanitize_text
from recboard.models import Decision, Protocol, ReviewerAssignment
from recboard.models.entities import DecisionType
from recboard.services import audit_service, paths, protocol_codes
from recboard.store import RecordStore, collection, utcnow

_logger = logging.getLogger("recboard")

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"accepted", "disapproved"},
    "accepted": {"approved", "disapproved"},
    "approved": {"archived", "disapproved"},
    "archived": set(),
    "disapproved": set(),
}

DECISION_STATUSES = {"accepted", "approved"}
MEETING_REFERENCE = re.compile(r"^\d{3}-\d{2}-\d{4}$")


def create_protocol(
    store: RecordStore,
    actor: Actor,
    title: str,
    principal_investigator: str = "",
    review_type: str = "full",
    research_type: str = "SR",
    ex_subtype: str | None = None,
    now: datetime | None = None,
) -> Protocol:
    """New protocol in ``pending`` with a temporary code."""
    require_role(actor, "proponent", "chairperson", action="protocol submission")
    now = now or utcnow()
    protocol = Protocol(
        title=sanitize_text(title, 500),
        owner_id=actor.id,
        principal_investigator=sanitize_text(principal_investigator, 200),
        review_type=review_type,
        research_type=research_type,
        ex_subtype=ex_subtype,
        temporary_code=protocol_codes.temporary_code(now),
        created_at=now,
        updated_at=now,
    )
    with store.transaction():
        protocol.id = store.create(paths.PROTOCOLS, protocol)
        audit_service.record(store, protocol.id, "protocol_created", actor, {"title": protocol.title})
    _logger.info("Protocol %s created by %s", protocol.id, actor.id)
    return get_protocol(store, protocol.id)


def get_protocol(store: RecordStore, protocol_id: str) -> Protocol:
    return store.require(paths.protocol(protocol_id), Protocol, "Protocol")


def list_protocols(store: RecordStore, status: str | None = None, owner_id: str | None = None) -> list[Protocol]:
    query = collection(paths.PROTOCOLS).ordered("created_at", descending=True)
    if status:
        query = query.where("status", "==", status)
    if owner_id:
        query = query.where("owner_id", "==", owner_id)
    return store.query_models(query, Protocol)


def _assign_permanent_code(store: RecordStore, protocol: Protocol, now: datetime) -> str:
    codes = [data.get("permanent_code") for _, data in store.query(collection(paths.PROTOCOLS))]
    sequence = protocol_codes.next_sequence(codes, now.year)
    return protocol_codes.permanent_code(
        now.year,
        sequence,
        exempt=protocol.review_type == "exempt" or protocol.research_type == "EX",
        principal_investigator=protocol.principal_investigator,
    )


def advance_status(
    store: RecordStore,
    actor: Actor,
    protocol_id: str,
    target: str,
    now: datetime | None = None,
) -> Protocol:
    """Move a protocol along an allowed edge; never backwards."""
    require_chairperson(actor, "protocol status changes")
    now = now or utcnow()
    with store.transaction():
        protocol = get_protocol(store, protocol_id)
        if target not in ALLOWED_TRANSITIONS.get(protocol.status, set()):
            raise InvalidTransition("Protocol", protocol.status, target)
        update: dict = {"status": target, "updated_at": now}
        if protocol.status == "pending" and target == "accepted":
            update["accepted_at"] = now
            if not protocol.permanent_code:
                update["permanent_code"] = _assign_permanent_code(store, protocol, now)
        store.write(paths.protocol(protocol_id), update, mode="merge", base_revision=protocol.revision)
        audit_service.record(
            store,
            protocol_id,
            "status_changed",
            actor,
            {"from": protocol.status, "to": target, "permanent_code": update.get("permanent_code")},
        )
    _logger.info("Protocol %s: %s -> %s", protocol_id, protocol.status, target)
    return get_protocol(store, protocol_id)


def record_decision(
    store: RecordStore,
    actor: Actor,
    protocol_id: str,
    decision_type: str,
    rationale: str = "",
    decision_date: datetime | None = None,
    timeline: str | None = None,
    meeting_reference: str | None = None,
    documents: list[str] | None = None,
    now: datetime | None = None,
) -> Decision:
    """Write a new decision version and its summary on the protocol as one unit."""
    require_chairperson(actor, "recording decisions")
    now = now or utcnow()
    problems = []
    if decision_type not in get_args(DecisionType):
        problems.append({"field": "decision_type", "message": f"Must be one of {', '.join(get_args(DecisionType))}"})
    if meeting_reference and not MEETING_REFERENCE.match(meeting_reference):
        problems.append({"field": "meeting_reference", "message": "Expected format NNN-MM-YYYY"})
    if problems:
        raise ValidationFailed(problems)
    with store.transaction():
        protocol = get_protocol(store, protocol_id)
        if protocol.status not in DECISION_STATUSES:
            raise InvalidTransition(
                "Protocol",
                protocol.status,
                decision_type,
                f"Decisions can only be recorded while a protocol is accepted or approved, not '{protocol.status}'",
            )
        history = decision_history(store, protocol_id)
        version = history[0].version + 1 if history else 1
        decision = Decision(
            id=f"v{version}",
            protocol_id=protocol_id,
            version=version,
            decision_type=decision_type,
            decision_date=decision_date or now,
            decision_by=actor.id,
            rationale=sanitize_text(rationale),
            timeline=sanitize_text(timeline, 500) or None,
            meeting_reference=meeting_reference,
            documents=list(documents or []),
            created_at=now,
        )
        store.write(paths.decision(protocol_id, version), decision)
        summary = {
            "version": version,
            "decision_type": decision.decision_type,
            "decision_date": decision.decision_date,
            "decision_by": actor.id,
        }
        store.write(
            paths.protocol(protocol_id),
            {"decision": summary, "updated_at": now},
            mode="merge",
            base_revision=protocol.revision,
        )
        audit_service.record(
            store,
            protocol_id,
            "decision_recorded",
            actor,
            {"version": version, "decision_type": decision_type, "meeting_reference": meeting_reference},
        )
    _logger.info("Protocol %s decision v%s: %s", protocol_id, version, decision_type)
    return store.require(paths.decision(protocol_id, version), Decision, "Decision")


def decision_history(store: RecordStore, protocol_id: str) -> list[Decision]:
    """All decision versions, newest first."""
    query = collection(paths.decisions(protocol_id)).ordered("version", descending=True)
    return store.query_models(query, Decision)


def current_decision(store: RecordStore, protocol_id: str) -> Decision | None:
    history = decision_history(store, protocol_id)
    return history[0] if history else None


def has_active_reviewers(store: RecordStore, protocol_id: str) -> bool:
    """Any assignment that has not been superseded."""
    get_protocol(store, protocol_id)
    query = collection(paths.assignments(protocol_id)).where("status", "!=", "superseded")
    return bool(store.query_models(query, ReviewerAssignment))
