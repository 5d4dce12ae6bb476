# SPDX-License-Identifier: Apache-2.0
"""Assessment form lifecycle: autosave, submit, approve, return."""
from __future__ import annotations

import logging
from datetime import datetime

from recboard.core.context import Actor, require_chairperson, require_role
from recboard.core.exceptions import InvalidTransition, PermissionDenied, ValidationFailed
from recboard.core.security import sanitize_text
from recboard.models import AssessmentForm, ReviewerAssignment
from recboard.services import assignment_service, audit_service, form_templates, paths
from recboard.store import RecordStore, collection_group, utcnow

_logger = logging.getLogger("recboard")

AUTOSAVE_TO_DRAFT = {"not-started", "returned"}
AUTOSAVE_IN_PLACE = {"draft", "submitted"}
SUBMITTABLE = {"not-started", "draft", "returned"}


def _check_form_type(form_type: str) -> None:
    if form_type not in form_templates.TEMPLATES:
        raise ValidationFailed(
            [{"field": "form_type", "message": f"Must be one of {', '.join(form_templates.TEMPLATES)}"}]
        )


def _locate(
    store: RecordStore,
    protocol_id: str,
    form_type: str,
    reviewer_id: str,
) -> tuple[ReviewerAssignment, AssessmentForm]:
    _check_form_type(form_type)
    assignment = assignment_service.assignment_for_reviewer(store, protocol_id, reviewer_id, form_type)
    form_path = paths.assessment_form(protocol_id, assignment.id, form_type)
    form = store.get_model(form_path, AssessmentForm)
    if form is None:
        form = AssessmentForm(
            protocol_id=protocol_id,
            assignment_id=assignment.id,
            form_type=form_type,
            reviewer_id=reviewer_id,
            reviewer_name=assignment.reviewer_name,
        )
    return assignment, form


def _check_reviewer(actor: Actor, reviewer_id: str) -> None:
    require_role(actor, "reviewer", action="editing assessments")
    if actor.id != reviewer_id:
        raise PermissionDenied("Reviewers may only edit their own assessments", reviewer_id=reviewer_id)


def get_form(store: RecordStore, protocol_id: str, form_type: str, reviewer_id: str) -> AssessmentForm:
    return _locate(store, protocol_id, form_type, reviewer_id)[1]


def list_forms(store: RecordStore, protocol_id: str) -> list[AssessmentForm]:
    query = collection_group("assessment_forms").where("protocol_id", "==", protocol_id)
    return store.query_models(query, AssessmentForm)


def autosave(
    store: RecordStore,
    actor: Actor,
    protocol_id: str,
    form_type: str,
    reviewer_id: str,
    form_data: dict,
    now: datetime | None = None,
) -> AssessmentForm:
    """Merge partial answers. Legal until the form is approved."""
    _check_reviewer(actor, reviewer_id)
    now = now or utcnow()
    with store.transaction():
        assignment, form = _locate(store, protocol_id, form_type, reviewer_id)
        if form.status in AUTOSAVE_TO_DRAFT:
            status = "draft"
        elif form.status in AUTOSAVE_IN_PLACE:
            status = form.status
        else:
            raise InvalidTransition(
                "Assessment", form.status, "draft", f"An {form.status} assessment can no longer be edited",
            )
        if form.status == "submitted":
            _logger.info("Assessment %s/%s changed after submission by %s", protocol_id, form_type, reviewer_id)
        store.write(
            paths.assessment_form(protocol_id, assignment.id, form_type),
            {
                **_identity(form),
                "status": status,
                "form_data": {**form.form_data, **form_data},
                "last_saved_at": now,
            },
            mode="merge",
            base_revision=form.revision or None,
        )
    return get_form(store, protocol_id, form_type, reviewer_id)


def submit(
    store: RecordStore,
    actor: Actor,
    protocol_id: str,
    form_type: str,
    reviewer_id: str,
    form_data: dict | None = None,
    now: datetime | None = None,
) -> AssessmentForm:
    """Validate against the template, mark submitted, complete the assignment."""
    _check_reviewer(actor, reviewer_id)
    now = now or utcnow()
    with store.transaction():
        assignment, form = _locate(store, protocol_id, form_type, reviewer_id)
        if form.status not in SUBMITTABLE:
            raise InvalidTransition("Assessment", form.status, "submitted")
        merged = {**form.form_data, **(form_data or {})}
        problems = form_templates.validate(form_type, merged)
        if problems:
            raise ValidationFailed(problems)
        store.write(
            paths.assessment_form(protocol_id, assignment.id, form_type),
            {
                **_identity(form),
                "status": "submitted",
                "form_data": merged,
                "last_saved_at": now,
                "submitted_at": now,
                "rejection_reason": None,
            },
            mode="merge",
            base_revision=form.revision or None,
        )
        if assignment.status == "pending":
            store.write(
                paths.assignment(protocol_id, assignment.id),
                {
                    "status": "completed",
                    "completed_at": now,
                    "decision": form_templates.assignment_decision(form_type, merged),
                    "comments": sanitize_text(
                        merged.get("justification")
                        or merged.get("recommendation_justification")
                        or merged.get("decision_justification")
                    ),
                },
                mode="merge",
                base_revision=assignment.revision,
            )
        audit_service.record(
            store, protocol_id, "assessment_submitted", actor,
            {"assignment_id": assignment.id, "form_type": form_type},
        )
    _logger.info("Assessment %s/%s submitted by %s", protocol_id, form_type, reviewer_id)
    return get_form(store, protocol_id, form_type, reviewer_id)


def approve(
    store: RecordStore,
    actor: Actor,
    protocol_id: str,
    form_type: str,
    reviewer_id: str,
    now: datetime | None = None,
) -> AssessmentForm:
    """submitted -> approved; the assignment becomes approved too."""
    require_chairperson(actor, "approving assessments")
    now = now or utcnow()
    with store.transaction():
        assignment, form = _locate(store, protocol_id, form_type, reviewer_id)
        if form.status != "submitted":
            raise InvalidTransition("Assessment", form.status, "approved")
        store.write(
            paths.assessment_form(protocol_id, assignment.id, form_type),
            {"status": "approved", "approved_at": now, "approved_by": actor.id},
            mode="merge",
            base_revision=form.revision,
        )
        if assignment.status == "completed":
            store.write(
                paths.assignment(protocol_id, assignment.id),
                {"status": "approved"},
                mode="merge",
                base_revision=assignment.revision,
            )
            assignment_service.adjust_load(store, reviewer_id, load=-1, reviewed=1)
        audit_service.record(
            store, protocol_id, "assessment_approved", actor,
            {"assignment_id": assignment.id, "form_type": form_type},
        )
    _logger.info("Assessment %s/%s of %s approved", protocol_id, form_type, reviewer_id)
    return get_form(store, protocol_id, form_type, reviewer_id)


def return_form(
    store: RecordStore,
    actor: Actor,
    protocol_id: str,
    form_type: str,
    reviewer_id: str,
    reason: str,
    now: datetime | None = None,
) -> AssessmentForm:
    """submitted -> returned with a reason; the reviewer may edit and resubmit."""
    require_chairperson(actor, "returning assessments")
    reason = sanitize_text(reason)
    if not reason:
        raise ValidationFailed([{"field": "reason", "message": "A reason is required to return an assessment"}])
    now = now or utcnow()
    with store.transaction():
        assignment, form = _locate(store, protocol_id, form_type, reviewer_id)
        if form.status != "submitted":
            raise InvalidTransition("Assessment", form.status, "returned")
        store.write(
            paths.assessment_form(protocol_id, assignment.id, form_type),
            {"status": "returned", "returned_at": now, "rejection_reason": reason},
            mode="merge",
            base_revision=form.revision,
        )
        audit_service.record(
            store, protocol_id, "assessment_returned", actor,
            {"assignment_id": assignment.id, "form_type": form_type, "reason": reason},
        )
    _logger.info("Assessment %s/%s of %s returned", protocol_id, form_type, reviewer_id)
    return get_form(store, protocol_id, form_type, reviewer_id)


def _identity(form: AssessmentForm) -> dict:
    return {
        "protocol_id": form.protocol_id,
        "assignment_id": form.assignment_id,
        "form_type": form.form_type,
        "reviewer_id": form.reviewer_id,
        "reviewer_name": form.reviewer_name,
    }
