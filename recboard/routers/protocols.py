# SPDX-License-Identifier: Apache-2.0
"""Protocol create, list, status changes, decisions, audit trail."""
from fastapi import APIRouter, Depends

from recboard.core.context import Actor, get_actor
from recboard.database import get_store
from recboard.schemas import DecisionCreate, ProtocolCreate, StatusChange
from recboard.services import audit_service, protocol_service
from recboard.store import RecordStore

router = APIRouter(prefix="/protocols", tags=["protocols"])


@router.post("", status_code=201)
def protocols_create(
    body: ProtocolCreate,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    """New protocol in pending with a temporary code."""
    protocol = protocol_service.create_protocol(
        store,
        actor,
        title=body.title,
        principal_investigator=body.principal_investigator,
        review_type=body.review_type,
        research_type=body.research_type,
        ex_subtype=body.ex_subtype,
    )
    return protocol.model_dump(mode="json")


@router.get("")
def protocols_list(
    status: str | None = None,
    owner_id: str | None = None,
    store: RecordStore = Depends(get_store),
):
    return [p.model_dump(mode="json") for p in protocol_service.list_protocols(store, status, owner_id)]


@router.get("/{protocol_id}")
def protocols_get(protocol_id: str, store: RecordStore = Depends(get_store)):
    return protocol_service.get_protocol(store, protocol_id).model_dump(mode="json")


@router.post("/{protocol_id}/status")
def protocols_status(
    protocol_id: str,
    body: StatusChange,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    """Chairperson moves the protocol along an allowed edge."""
    return protocol_service.advance_status(store, actor, protocol_id, body.status).model_dump(mode="json")


@router.post("/{protocol_id}/decision", status_code=201)
def protocols_decision(
    protocol_id: str,
    body: DecisionCreate,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    decision = protocol_service.record_decision(
        store,
        actor,
        protocol_id,
        decision_type=body.decision_type,
        rationale=body.rationale,
        decision_date=body.decision_date,
        timeline=body.timeline,
        meeting_reference=body.meeting_reference,
        documents=body.documents,
    )
    return decision.model_dump(mode="json")


@router.get("/{protocol_id}/decisions")
def protocols_decisions(protocol_id: str, store: RecordStore = Depends(get_store)):
    """Decision history, newest first."""
    protocol_service.get_protocol(store, protocol_id)
    return [d.model_dump(mode="json") for d in protocol_service.decision_history(store, protocol_id)]


@router.get("/{protocol_id}/has_active_reviewers")
def protocols_has_active_reviewers(protocol_id: str, store: RecordStore = Depends(get_store)):
    return {"protocol_id": protocol_id, "has_active_reviewers": protocol_service.has_active_reviewers(store, protocol_id)}


@router.get("/{protocol_id}/audit_trail")
def protocols_audit_trail(protocol_id: str, store: RecordStore = Depends(get_store)):
    """Hash-chained audit entries with chain verification."""
    protocol_service.get_protocol(store, protocol_id)
    return {
        "protocol_id": protocol_id,
        "entries": audit_service.audit_trail(store, protocol_id),
        "verification": audit_service.verify_audit_chain(store, protocol_id),
    }
