# SPDX-License-Identifier: Apache-2.0
"""Reviewer slots, completion, overdue detection and reassignment."""
from datetime import datetime, timedelta, timezone

import pytest

from recboard.core.exceptions import InvalidTransition, PermissionDenied, SlotOccupied, ValidationFailed
from recboard.core.context import Actor
from recboard.models import AssessmentForm
from recboard.services import assignment_service, protocol_service

from conftest import ACCEPTED, FakeMailer

DEADLINE = datetime(2025, 1, 1, tzinfo=timezone.utc)
TEN_JAN = datetime(2025, 1, 10, tzinfo=timezone.utc)


def _assign(store, chair, protocol_id, slot=0, reviewer_id="r1", mailer=None, **kwargs):
    return assignment_service.assign_reviewer(
        store, chair, protocol_id, slot, reviewer_id, mailer=mailer or FakeMailer(), now=ACCEPTED, **kwargs
    )


def test_assign_creates_pending_assignment_and_blank_form(store, chair, accepted, reviewers, mailer):
    result = _assign(store, chair, accepted.id, mailer=mailer)
    assignment = result.assignment
    assert assignment.status == "pending"
    assert assignment.slot == 0
    assert assignment.form_type == "protocol-review"
    assert assignment.deadline == ACCEPTED + timedelta(days=30)
    assert result.notification.sent is True
    assert mailer.sent[0].to_email == "ana@rec.test"
    assert accepted.permanent_code in mailer.sent[0].subject

    form = store.get_model(assignment.form_ref, AssessmentForm)
    assert form.status == "not-started"
    assert form.form_data["protocol_code"] == accepted.permanent_code
    assert form.form_data["principal_investigator"] == "Juan Dela Cruz"
    assert assignment_service.get_reviewer(store, "r1").current_load == 1


def test_slot_templates(store, chair, proponent):
    sr = protocol_service.create_protocol(store, proponent, "Survey", "Ana Reyes")
    ex = protocol_service.create_protocol(
        store, proponent, "Mice", "Ana Reyes", review_type="exempt", research_type="EX", ex_subtype="experimental",
    )
    assert assignment_service.slot_templates(sr) == ["protocol-review", "protocol-review", "informed-consent"]
    assert assignment_service.slot_templates(ex) == ["iacuc-review", "iacuc-review"]


def test_slot_occupied(store, chair, accepted, reviewers):
    """At most one active assignment per slot."""
    first = _assign(store, chair, accepted.id).assignment
    with pytest.raises(SlotOccupied) as exc:
        _assign(store, chair, accepted.id, reviewer_id="r2")
    assert exc.value.extra["assignment_id"] == first.id
    assert len(assignment_service.list_assignments(store, accepted.id)) == 1


def test_assign_requires_accepted_protocol(store, chair, protocol, reviewers):
    with pytest.raises(InvalidTransition):
        _assign(store, chair, protocol.id)


def test_only_chair_assigns(store, proponent, accepted, reviewers):
    with pytest.raises(PermissionDenied):
        _assign(store, proponent, accepted.id)


def test_notification_failure_does_not_undo_assignment(store, chair, accepted, reviewers):
    result = _assign(store, chair, accepted.id, mailer=FakeMailer(fail=True))
    assert result.notification.sent is False
    assert "connection refused" in result.notification.error
    assert assignment_service.get_assignment(store, accepted.id, result.assignment.id).status == "pending"


def test_bulk_assignment_fills_slots(store, chair, accepted, reviewers, mailer):
    results = assignment_service.assign_reviewers(
        store, chair, accepted.id, ["r1", "r2", "r3"], mailer=mailer, now=ACCEPTED,
    )
    assert [r.assignment.slot for r in results] == [0, 1, 2]
    assert [r.assignment.form_type for r in results] == ["protocol-review", "protocol-review", "informed-consent"]
    assert len(mailer.sent) == 3


def test_bulk_assignment_is_all_or_nothing(store, chair, accepted, reviewers, mailer):
    _assign(store, chair, accepted.id, slot=1, reviewer_id="r3")
    with pytest.raises(SlotOccupied):
        assignment_service.assign_reviewers(store, chair, accepted.id, ["r1", "r2"], mailer=mailer)
    assert len(assignment_service.list_assignments(store, accepted.id)) == 1
    assert mailer.sent == []


def test_bulk_assignment_rejects_duplicates(store, chair, accepted, reviewers, mailer):
    with pytest.raises(ValidationFailed):
        assignment_service.assign_reviewers(store, chair, accepted.id, ["r1", "r1"], mailer=mailer)


def test_complete_assignment(store, chair, accepted, reviewers, reviewer_actor):
    assignment = _assign(store, chair, accepted.id).assignment
    done = assignment_service.complete_assignment(
        store, reviewer_actor, accepted.id, assignment.id, "approve", "Looks fine",
    )
    assert done.status == "completed"
    assert done.decision == "approve"
    with pytest.raises(InvalidTransition):
        assignment_service.complete_assignment(store, reviewer_actor, accepted.id, assignment.id, "approve")


def test_other_reviewer_cannot_complete(store, chair, accepted, reviewers):
    assignment = _assign(store, chair, accepted.id).assignment
    intruder = Actor(id="r2", role="reviewer")
    with pytest.raises(PermissionDenied):
        assignment_service.complete_assignment(store, intruder, accepted.id, assignment.id, "approve")


def test_reassign_overdue_assignment(store, chair, accepted, reviewers, mailer):
    """Old assignment superseded, new one pending, one history row with days overdue."""
    a1 = _assign(store, chair, accepted.id, deadline=DEADLINE).assignment
    new_deadline = datetime(2025, 1, 24, tzinfo=timezone.utc)
    result = assignment_service.reassign(
        store, chair, accepted.id, a1.id, "r2", new_deadline, "no response", mailer=mailer, now=TEN_JAN,
    )

    old = assignment_service.get_assignment(store, accepted.id, a1.id)
    a2 = result.assignment
    assert old.status == "superseded"
    assert old.superseded_by == a2.id
    assert a2.status == "pending"
    assert a2.reviewer_id == "r2"
    assert a2.slot == a1.slot
    assert a2.replaces == a1.id
    assert a2.deadline == new_deadline

    history = assignment_service.reassignment_history(store, accepted.id)
    assert len(history) == 1
    assert history[0].days_overdue == 9
    assert history[0].old_assignment_id == a1.id
    assert history[0].new_assignment_id == a2.id
    assert history[0].reason == "no response"
    assert result.history.id == history[0].id

    active = assignment_service.list_assignments(store, accepted.id, include_superseded=False)
    assert [a.id for a in active] == [a2.id]
    assert assignment_service.get_reviewer(store, "r1").current_load == 0
    assert assignment_service.get_reviewer(store, "r2").current_load == 1
    assert mailer.sent[-1].to_email == "ben@rec.test"


def test_reassign_default_deadline(store, chair, accepted, reviewers, mailer):
    a1 = _assign(store, chair, accepted.id, deadline=DEADLINE).assignment
    result = assignment_service.reassign(store, chair, accepted.id, a1.id, "r2", mailer=mailer, now=TEN_JAN)
    assert result.assignment.deadline == TEN_JAN + timedelta(days=14)


def test_reassign_before_deadline_records_zero_days(store, chair, accepted, reviewers, mailer):
    a1 = _assign(store, chair, accepted.id, deadline=datetime(2025, 2, 1, tzinfo=timezone.utc)).assignment
    result = assignment_service.reassign(store, chair, accepted.id, a1.id, "r2", mailer=mailer, now=TEN_JAN)
    assert result.history.days_overdue == 0


def test_reassign_requires_pending(store, chair, accepted, reviewers, reviewer_actor, mailer):
    a1 = _assign(store, chair, accepted.id).assignment
    assignment_service.complete_assignment(store, reviewer_actor, accepted.id, a1.id, "approve")
    with pytest.raises(InvalidTransition):
        assignment_service.reassign(store, chair, accepted.id, a1.id, "r2", mailer=mailer)
    assert assignment_service.reassignment_history(store, accepted.id) == []


def test_reassign_to_same_reviewer_rejected(store, chair, accepted, reviewers, mailer):
    a1 = _assign(store, chair, accepted.id).assignment
    with pytest.raises(ValidationFailed):
        assignment_service.reassign(store, chair, accepted.id, a1.id, "r1", mailer=mailer)


def test_overdue_listing(store, chair, accepted, reviewers):
    _assign(store, chair, accepted.id, slot=0, reviewer_id="r1", deadline=DEADLINE)
    _assign(store, chair, accepted.id, slot=1, reviewer_id="r2", deadline=datetime(2025, 3, 1, tzinfo=timezone.utc))
    overdue = assignment_service.list_overdue_assignments(store, now=TEN_JAN)
    assert len(overdue) == 1
    assert overdue[0]["assignment"]["reviewer_id"] == "r1"
    assert overdue[0]["days_overdue"] == 9
    assert assignment_service.list_overdue_assignments(store, now=TEN_JAN, protocol_id="other") == []


def test_days_overdue_never_negative():
    assert assignment_service.days_overdue(DEADLINE, TEN_JAN) == 9
    assert assignment_service.days_overdue(TEN_JAN, DEADLINE) == 0


def test_reassigned_protocols_for_reviewer(store, chair, accepted, reviewers, mailer):
    a1 = _assign(store, chair, accepted.id, deadline=DEADLINE).assignment
    assignment_service.reassign(store, chair, accepted.id, a1.id, "r2", mailer=mailer, now=TEN_JAN)
    rows = assignment_service.reassigned_protocols_for(store, "r1")
    assert [r.protocol_id for r in rows] == [accepted.id]
    assert assignment_service.reassigned_protocols_for(store, "r2") == []
