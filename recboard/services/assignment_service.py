# SPDX-License-Identifier: Apache-2.0
"""Reviewer registry, slot assignment, completion, overdue checks and reassignment."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from recboard.config import settings
from recboard.core.context import Actor, require_chairperson, require_role
from recboard.core.exceptions import (
    InvalidTransition,
    NotFoundError,
    PermissionDenied,
    SlotOccupied,
    ValidationFailed,
)
from recboard.core.security import sanitize_text
from recboard.models import AssessmentForm, Protocol, ReassignmentHistory, Reviewer, ReviewerAssignment
from recboard.services import audit_service, form_templates, paths, protocol_service
from recboard.services.notification_service import Mailer, NotificationResult, get_mailer, notify_reviewer_assignment
from recboard.store import RecordStore, coerce_timestamp, collection, collection_group, new_id, utcnow

_logger = logging.getLogger("recboard")

# Review slots per research type; EX depends on the exempt sub-type.
REVIEWER_REQUIREMENTS: dict[str, list[str]] = {
    "SR": ["protocol-review", "protocol-review", "informed-consent"],
    "PR": ["protocol-review", "protocol-review", "informed-consent"],
    "HO": ["protocol-review", "protocol-review", "informed-consent"],
    "BS": ["protocol-review", "protocol-review", "informed-consent"],
}
EXEMPT_REQUIREMENTS: dict[str, list[str]] = {
    "documentary": ["exemption-checklist", "exemption-checklist"],
    "experimental": ["iacuc-review", "iacuc-review"],
}

COMPLETION_DECISIONS = ("approve", "revisions-required", "disapprove")


@dataclass
class AssignmentResult:
    assignment: ReviewerAssignment
    notification: NotificationResult
    history: ReassignmentHistory | None = None

    def to_dict(self) -> dict:
        out = {
            "assignment": self.assignment.model_dump(mode="json"),
            "notification": self.notification.to_dict(),
        }
        if self.history is not None:
            out["history"] = self.history.model_dump(mode="json")
        return out


def slot_templates(protocol: Protocol) -> list[str]:
    """Form type for each review slot of a protocol."""
    if protocol.research_type == "EX" or protocol.review_type == "exempt":
        return list(EXEMPT_REQUIREMENTS[protocol.ex_subtype or "documentary"])
    return list(REVIEWER_REQUIREMENTS.get(protocol.research_type, REVIEWER_REQUIREMENTS["SR"]))


def review_days(review_type: str) -> int:
    return {
        "exempt": settings.review_days_exempt,
        "expedited": settings.review_days_expedited,
        "full": settings.review_days_full,
    }.get(review_type, settings.review_days_expedited)


def default_deadline(protocol: Protocol, now: datetime) -> datetime:
    return now + timedelta(days=review_days(protocol.review_type))


def days_overdue(deadline: datetime, now: datetime) -> int:
    """Whole days past the deadline, never negative."""
    elapsed = coerce_timestamp(now) - coerce_timestamp(deadline)
    return max(0, elapsed.days)


def is_overdue(assignment: ReviewerAssignment, now: datetime | None = None) -> bool:
    return assignment.status == "pending" and coerce_timestamp(now or utcnow()) > assignment.deadline


# Reviewer registry

def save_reviewer(
    store: RecordStore,
    actor: Actor,
    name: str,
    email: str = "",
    expertise: list[str] | None = None,
    is_active: bool = True,
    reviewer_id: str | None = None,
) -> Reviewer:
    require_chairperson(actor, "managing reviewers")
    reviewer_id = reviewer_id or new_id()
    existing = store.get_model(paths.reviewer(reviewer_id), Reviewer)
    data = {
        "name": sanitize_text(name, 200),
        "email": email.strip(),
        "expertise": list(expertise or []),
        "is_active": is_active,
    }
    if existing is None:
        data.update(current_load=0, total_reviewed=0)
    store.write(paths.reviewer(reviewer_id), data, mode="merge")
    return get_reviewer(store, reviewer_id)


def get_reviewer(store: RecordStore, reviewer_id: str) -> Reviewer:
    return store.require(paths.reviewer(reviewer_id), Reviewer, "Reviewer")


def list_reviewers(store: RecordStore, active_only: bool = False) -> list[Reviewer]:
    query = collection(paths.REVIEWERS).ordered("name")
    if active_only:
        query = query.where("is_active", "==", True)
    return store.query_models(query, Reviewer)


def adjust_load(store: RecordStore, reviewer_id: str, load: int = 0, reviewed: int = 0) -> None:
    reviewer = store.get_model(paths.reviewer(reviewer_id), Reviewer)
    if reviewer is None:
        return
    store.write(
        paths.reviewer(reviewer_id),
        {
            "current_load": max(0, reviewer.current_load + load),
            "total_reviewed": reviewer.total_reviewed + reviewed,
        },
        mode="merge",
        base_revision=reviewer.revision,
    )


# Assignments

def get_assignment(store: RecordStore, protocol_id: str, assignment_id: str) -> ReviewerAssignment:
    return store.require(paths.assignment(protocol_id, assignment_id), ReviewerAssignment, "Assignment")


def list_assignments(
    store: RecordStore,
    protocol_id: str,
    include_superseded: bool = True,
) -> list[ReviewerAssignment]:
    query = collection(paths.assignments(protocol_id)).ordered("assigned_at")
    if not include_superseded:
        query = query.where("status", "!=", "superseded")
    return store.query_models(query, ReviewerAssignment)


def active_assignment(store: RecordStore, protocol_id: str, slot: int) -> ReviewerAssignment | None:
    query = (
        collection(paths.assignments(protocol_id))
        .where("slot", "==", slot)
        .where("status", "!=", "superseded")
    )
    found = store.query_models(query, ReviewerAssignment)
    return found[0] if found else None


def assignment_for_reviewer(
    store: RecordStore,
    protocol_id: str,
    reviewer_id: str,
    form_type: str | None = None,
) -> ReviewerAssignment:
    """The reviewer's active assignment on a protocol (optionally for one form type)."""
    query = (
        collection(paths.assignments(protocol_id))
        .where("reviewer_id", "==", reviewer_id)
        .where("status", "!=", "superseded")
        .ordered("slot")
    )
    if form_type:
        query = query.where("form_type", "==", form_type)
    found = store.query_models(query, ReviewerAssignment)
    if not found:
        raise NotFoundError(
            f"Reviewer {reviewer_id} has no active assignment on protocol {protocol_id}",
            reviewer_id=reviewer_id,
            form_type=form_type,
        )
    return found[0]


def _create_assignment(
    store: RecordStore,
    actor: Actor,
    protocol: Protocol,
    slot: int,
    form_type: str,
    reviewer: Reviewer,
    deadline: datetime,
    now: datetime,
    replaces: str | None = None,
) -> ReviewerAssignment:
    assignment_id = new_id()
    form_path = paths.assessment_form(protocol.id, assignment_id, form_type)
    assignment = ReviewerAssignment(
        id=assignment_id,
        protocol_id=protocol.id,
        slot=slot,
        form_type=form_type,
        reviewer_id=reviewer.id,
        reviewer_name=reviewer.name,
        reviewer_email=reviewer.email,
        assigned_at=now,
        assigned_by=actor.id,
        deadline=deadline,
        form_ref=form_path,
        replaces=replaces,
    )
    store.write(paths.assignment(protocol.id, assignment_id), assignment)
    form = AssessmentForm(
        protocol_id=protocol.id,
        assignment_id=assignment_id,
        form_type=form_type,
        reviewer_id=reviewer.id,
        reviewer_name=reviewer.name,
        form_data=form_templates.blank_form(form_type, protocol),
    )
    store.write(form_path, form)
    adjust_load(store, reviewer.id, load=1)
    return assignment


def _resolve_slot(protocol: Protocol, slot: int, form_type: str | None) -> str:
    templates = slot_templates(protocol)
    if slot < 0:
        raise ValidationFailed([{"field": "slot", "message": "Slot must be zero or positive"}])
    if form_type:
        return form_type
    if slot >= len(templates):
        raise ValidationFailed(
            [{"field": "form_type", "message": f"Slot {slot} has no default form; {len(templates)} slots defined"}]
        )
    return templates[slot]


def _assign(
    store: RecordStore,
    actor: Actor,
    protocol: Protocol,
    slot: int,
    reviewer_id: str,
    deadline: datetime | None,
    form_type: str | None,
    now: datetime,
) -> tuple[ReviewerAssignment, Reviewer]:
    reviewer = get_reviewer(store, reviewer_id)
    resolved_form = _resolve_slot(protocol, slot, form_type)
    occupied = active_assignment(store, protocol.id, slot)
    if occupied is not None:
        raise SlotOccupied(protocol.id, slot, occupied.id)
    deadline = coerce_timestamp(deadline) if deadline else default_deadline(protocol, now)
    assignment = _create_assignment(store, actor, protocol, slot, resolved_form, reviewer, deadline, now)
    audit_service.record(
        store,
        protocol.id,
        "reviewer_assigned",
        actor,
        {"assignment_id": assignment.id, "slot": slot, "reviewer_id": reviewer_id, "deadline": deadline},
    )
    _logger.info("Protocol %s slot %s assigned to reviewer %s", protocol.id, slot, reviewer_id)
    return assignment, reviewer


def _require_accepted(protocol: Protocol) -> None:
    if protocol.status != "accepted":
        raise InvalidTransition(
            "Protocol",
            protocol.status,
            "under review",
            f"Reviewers can only be assigned to accepted protocols, not '{protocol.status}'",
        )


def assign_reviewer(
    store: RecordStore,
    actor: Actor,
    protocol_id: str,
    slot: int,
    reviewer_id: str,
    deadline: datetime | None = None,
    form_type: str | None = None,
    mailer: Mailer | None = None,
    now: datetime | None = None,
) -> AssignmentResult:
    """Put a reviewer on an empty slot of an accepted protocol and notify them."""
    require_chairperson(actor, "assigning reviewers")
    now = now or utcnow()
    with store.transaction():
        protocol = protocol_service.get_protocol(store, protocol_id)
        _require_accepted(protocol)
        assignment, reviewer = _assign(store, actor, protocol, slot, reviewer_id, deadline, form_type, now)
    notification = notify_reviewer_assignment(mailer or get_mailer(), reviewer, protocol, assignment.deadline)
    return AssignmentResult(get_assignment(store, protocol_id, assignment.id), notification)


def assign_reviewers(
    store: RecordStore,
    actor: Actor,
    protocol_id: str,
    reviewer_ids: list[str],
    deadline: datetime | None = None,
    mailer: Mailer | None = None,
    now: datetime | None = None,
) -> list[AssignmentResult]:
    """Fill slots ``0..n-1`` in one unit of work, then send the notifications."""
    require_chairperson(actor, "assigning reviewers")
    now = now or utcnow()
    with store.transaction():
        protocol = protocol_service.get_protocol(store, protocol_id)
        _require_accepted(protocol)
        templates = slot_templates(protocol)
        if len(reviewer_ids) > len(templates):
            raise ValidationFailed(
                [{"field": "reviewer_ids", "message": f"At most {len(templates)} reviewers for this protocol"}]
            )
        if len(set(reviewer_ids)) != len(reviewer_ids):
            raise ValidationFailed([{"field": "reviewer_ids", "message": "A reviewer may hold only one slot"}])
        created = [
            _assign(store, actor, protocol, slot, reviewer_id, deadline, None, now)
            for slot, reviewer_id in enumerate(reviewer_ids)
        ]
    mailer = mailer or get_mailer()
    return [
        AssignmentResult(
            get_assignment(store, protocol_id, assignment.id),
            notify_reviewer_assignment(mailer, reviewer, protocol, assignment.deadline),
        )
        for assignment, reviewer in created
    ]


def complete_assignment(
    store: RecordStore,
    actor: Actor,
    protocol_id: str,
    assignment_id: str,
    decision: str,
    comments: str = "",
    now: datetime | None = None,
) -> ReviewerAssignment:
    """pending -> completed, by the assigned reviewer or the chairperson."""
    require_role(actor, "reviewer", "chairperson", action="completing an assignment")
    if decision not in COMPLETION_DECISIONS:
        raise ValidationFailed(
            [{"field": "decision", "message": f"Must be one of {', '.join(COMPLETION_DECISIONS)}"}]
        )
    now = now or utcnow()
    with store.transaction():
        assignment = get_assignment(store, protocol_id, assignment_id)
        if actor.role == "reviewer" and actor.id != assignment.reviewer_id:
            raise PermissionDenied("Only the assigned reviewer may complete this assignment")
        if assignment.status != "pending":
            raise InvalidTransition("Assignment", assignment.status, "completed")
        store.write(
            paths.assignment(protocol_id, assignment_id),
            {
                "status": "completed",
                "completed_at": now,
                "decision": decision,
                "comments": sanitize_text(comments),
            },
            mode="merge",
            base_revision=assignment.revision,
        )
        audit_service.record(
            store, protocol_id, "assignment_completed", actor,
            {"assignment_id": assignment_id, "decision": decision},
        )
    _logger.info("Assignment %s on %s completed: %s", assignment_id, protocol_id, decision)
    return get_assignment(store, protocol_id, assignment_id)


def reassign(
    store: RecordStore,
    actor: Actor,
    protocol_id: str,
    assignment_id: str,
    new_reviewer_id: str,
    new_deadline: datetime | None = None,
    reason: str = "",
    mailer: Mailer | None = None,
    now: datetime | None = None,
) -> AssignmentResult:
    """Supersede a pending assignment, open a new one on the same slot, record history.

    All three writes commit together, so no observer sees two active
    assignments on one slot or a history row without its pair.
    """
    require_chairperson(actor, "reassigning reviewers")
    now = now or utcnow()
    with store.transaction():
        protocol = protocol_service.get_protocol(store, protocol_id)
        old = get_assignment(store, protocol_id, assignment_id)
        if old.status != "pending":
            raise InvalidTransition(
                "Assignment",
                old.status,
                "superseded",
                f"Only pending assignments can be reassigned; this one is '{old.status}'",
            )
        if new_reviewer_id == old.reviewer_id:
            raise ValidationFailed(
                [{"field": "new_reviewer_id", "message": "New reviewer must differ from the current reviewer"}]
            )
        new_reviewer = get_reviewer(store, new_reviewer_id)
        new_deadline = (
            coerce_timestamp(new_deadline) if new_deadline else now + timedelta(days=settings.reassignment_days)
        )
        overdue = days_overdue(old.deadline, now)
        new = _create_assignment(
            store, actor, protocol, old.slot, old.form_type, new_reviewer, new_deadline, now, replaces=old.id,
        )
        store.write(
            paths.assignment(protocol_id, old.id),
            {"status": "superseded", "superseded_at": now, "superseded_by": new.id},
            mode="merge",
            base_revision=old.revision,
        )
        adjust_load(store, old.reviewer_id, load=-1)
        history = ReassignmentHistory(
            protocol_id=protocol_id,
            old_assignment_id=old.id,
            new_assignment_id=new.id,
            old_reviewer_id=old.reviewer_id,
            old_reviewer_name=old.reviewer_name,
            old_reviewer_email=old.reviewer_email,
            new_reviewer_id=new_reviewer.id,
            new_reviewer_name=new_reviewer.name,
            new_reviewer_email=new_reviewer.email,
            slot=old.slot,
            form_type=old.form_type,
            original_deadline=old.deadline,
            new_deadline=new_deadline,
            reassigned_at=now,
            reassigned_by=actor.id,
            reason=sanitize_text(reason),
            days_overdue=overdue,
        )
        history.id = store.create(paths.reassignment_history(protocol_id), history)
        audit_service.record(
            store,
            protocol_id,
            "reviewer_reassigned",
            actor,
            {
                "old_assignment_id": old.id,
                "new_assignment_id": new.id,
                "slot": old.slot,
                "days_overdue": overdue,
                "reason": history.reason,
            },
        )
    _logger.info(
        "Protocol %s slot %s reassigned from %s to %s (%s days overdue)",
        protocol_id, old.slot, old.reviewer_id, new_reviewer_id, overdue,
    )
    notification = notify_reviewer_assignment(mailer or get_mailer(), new_reviewer, protocol, new_deadline)
    return AssignmentResult(
        get_assignment(store, protocol_id, new.id),
        notification,
        history=store.require(
            f"{paths.reassignment_history(protocol_id)}/{history.id}", ReassignmentHistory, "Reassignment"
        ),
    )


def reassignment_history(store: RecordStore, protocol_id: str) -> list[ReassignmentHistory]:
    query = collection(paths.reassignment_history(protocol_id)).ordered("reassigned_at", descending=True)
    return store.query_models(query, ReassignmentHistory)


def reassigned_protocols_for(store: RecordStore, reviewer_id: str) -> list[ReassignmentHistory]:
    """History rows where this reviewer was taken off a protocol, newest first."""
    query = (
        collection_group("reassignment_history")
        .where("old_reviewer_id", "==", reviewer_id)
        .ordered("reassigned_at", descending=True)
    )
    return store.query_models(query, ReassignmentHistory)


def list_overdue_assignments(
    store: RecordStore,
    now: datetime | None = None,
    protocol_id: str | None = None,
) -> list[dict]:
    """Pending assignments past their deadline, most overdue first."""
    now = coerce_timestamp(now or utcnow())
    query = collection_group("assignments").where("status", "==", "pending").where("deadline", "<", now)
    if protocol_id:
        query = query.where("protocol_id", "==", protocol_id)
    overdue = store.query_models(query.ordered("deadline"), ReviewerAssignment)
    return [
        {"assignment": a.model_dump(mode="json"), "days_overdue": days_overdue(a.deadline, now)}
        for a in overdue
    ]
