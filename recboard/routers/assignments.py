# SPDX-License-Identifier: Apache-2.0
"""Reviewer registry, assignments, completion, reassignment, overdue."""
from fastapi import APIRouter, Depends

from recboard.core.context import Actor, get_actor
from recboard.database import get_store
from recboard.schemas import AssignmentComplete, AssignmentCreate, BulkAssignment, Reassignment, ReviewerCreate
from recboard.services import assignment_service, protocol_service
from recboard.services.notification_service import Mailer, get_mailer
from recboard.store import RecordStore

router = APIRouter(tags=["assignments"])


@router.post("/reviewers", status_code=201)
def reviewers_save(
    body: ReviewerCreate,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    reviewer = assignment_service.save_reviewer(
        store,
        actor,
        name=body.name,
        email=body.email,
        expertise=body.expertise,
        is_active=body.is_active,
        reviewer_id=body.reviewer_id,
    )
    return reviewer.model_dump(mode="json")


@router.get("/reviewers")
def reviewers_list(active_only: bool = False, store: RecordStore = Depends(get_store)):
    return [r.model_dump(mode="json") for r in assignment_service.list_reviewers(store, active_only)]


@router.get("/reviewers/{reviewer_id}/reassigned_protocols")
def reviewers_reassigned(reviewer_id: str, store: RecordStore = Depends(get_store)):
    """Protocols this reviewer was taken off, newest first."""
    return [h.model_dump(mode="json") for h in assignment_service.reassigned_protocols_for(store, reviewer_id)]


@router.get("/assignments/overdue")
def assignments_overdue(protocol_id: str | None = None, store: RecordStore = Depends(get_store)):
    return assignment_service.list_overdue_assignments(store, protocol_id=protocol_id)


@router.get("/protocols/{protocol_id}/slots")
def protocol_slots(protocol_id: str, store: RecordStore = Depends(get_store)):
    """Form type per slot and who currently holds it."""
    protocol = protocol_service.get_protocol(store, protocol_id)
    slots = []
    for slot, form_type in enumerate(assignment_service.slot_templates(protocol)):
        held = assignment_service.active_assignment(store, protocol_id, slot)
        slots.append({"slot": slot, "form_type": form_type, "assignment": held.model_dump(mode="json") if held else None})
    return slots


@router.get("/protocols/{protocol_id}/assignments")
def assignments_list(
    protocol_id: str,
    include_superseded: bool = True,
    store: RecordStore = Depends(get_store),
):
    protocol_service.get_protocol(store, protocol_id)
    return [
        {**a.model_dump(mode="json"), "is_overdue": assignment_service.is_overdue(a)}
        for a in assignment_service.list_assignments(store, protocol_id, include_superseded)
    ]


@router.post("/protocols/{protocol_id}/assignments", status_code=201)
def assignments_create(
    protocol_id: str,
    body: AssignmentCreate,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
    mailer: Mailer = Depends(get_mailer),
):
    """Assign a reviewer to a slot; email outcome is reported, never fatal."""
    result = assignment_service.assign_reviewer(
        store,
        actor,
        protocol_id,
        slot=body.slot,
        reviewer_id=body.reviewer_id,
        deadline=body.deadline,
        form_type=body.form_type,
        mailer=mailer,
    )
    return result.to_dict()


@router.post("/protocols/{protocol_id}/assignments/bulk", status_code=201)
def assignments_bulk(
    protocol_id: str,
    body: BulkAssignment,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
    mailer: Mailer = Depends(get_mailer),
):
    results = assignment_service.assign_reviewers(
        store, actor, protocol_id, body.reviewer_ids, deadline=body.deadline, mailer=mailer,
    )
    return [r.to_dict() for r in results]


@router.post("/protocols/{protocol_id}/assignments/{assignment_id}/complete")
def assignments_complete(
    protocol_id: str,
    assignment_id: str,
    body: AssignmentComplete,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    assignment = assignment_service.complete_assignment(
        store, actor, protocol_id, assignment_id, body.decision, body.comments,
    )
    return assignment.model_dump(mode="json")


@router.post("/protocols/{protocol_id}/assignments/{assignment_id}/reassign")
def assignments_reassign(
    protocol_id: str,
    assignment_id: str,
    body: Reassignment,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
    mailer: Mailer = Depends(get_mailer),
):
    """Supersede the assignment, open a new one on the slot, record history."""
    result = assignment_service.reassign(
        store,
        actor,
        protocol_id,
        assignment_id,
        new_reviewer_id=body.new_reviewer_id,
        new_deadline=body.new_deadline,
        reason=body.reason,
        mailer=mailer,
    )
    return result.to_dict()


@router.get("/protocols/{protocol_id}/reassignment_history")
def assignments_history(protocol_id: str, store: RecordStore = Depends(get_store)):
    protocol_service.get_protocol(store, protocol_id)
    return [h.model_dump(mode="json") for h in assignment_service.reassignment_history(store, protocol_id)]
