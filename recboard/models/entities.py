# SPDX-License-Identifier: Apache-2.0
"""Typed views of store records. Validated at the store boundary."""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from recboard.store.timestamps import Timestamp

ProtocolStatus = Literal["pending", "accepted", "approved", "archived", "disapproved"]
ReviewType = Literal["exempt", "expedited", "full"]
ResearchType = Literal["SR", "PR", "HO", "BS", "EX"]
AssignmentStatus = Literal["pending", "completed", "approved", "superseded"]
AssignmentDecision = Literal["approve", "revisions-required", "disapprove"]
DocumentStatus = Literal["requested", "pending", "accepted", "rejected", "rework", "revise"]
FormType = Literal["protocol-review", "informed-consent", "exemption-checklist", "iacuc-review"]
FormStatus = Literal["not-started", "draft", "submitted", "approved", "returned"]
DecisionType = Literal[
    "approved",
    "approved_minor_revisions",
    "major_revisions_deferred",
    "disapproved",
    "deferred",
]


class Record(BaseModel):
    """Common store metadata: record id and write revision."""

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    revision: int = 0


class DecisionSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: int
    decision_type: DecisionType
    decision_date: Timestamp
    decision_by: str


class Protocol(Record):
    status: ProtocolStatus = "pending"
    title: str
    owner_id: str
    principal_investigator: str = ""
    review_type: ReviewType = "full"
    research_type: ResearchType = "SR"
    ex_subtype: Literal["documentary", "experimental"] | None = None
    temporary_code: str
    permanent_code: str | None = None
    created_at: Timestamp
    updated_at: Timestamp | None = None
    accepted_at: Timestamp | None = None
    decision: DecisionSummary | None = None


class Reviewer(Record):
    name: str
    email: str = ""
    expertise: list[str] = Field(default_factory=list)
    is_active: bool = True
    current_load: int = 0
    total_reviewed: int = 0


class ReviewerAssignment(Record):
    protocol_id: str
    slot: int
    form_type: FormType
    reviewer_id: str
    reviewer_name: str = ""
    reviewer_email: str = ""
    status: AssignmentStatus = "pending"
    assigned_at: Timestamp
    assigned_by: str = ""
    deadline: Timestamp
    completed_at: Timestamp | None = None
    decision: AssignmentDecision | None = None
    comments: str = ""
    form_ref: str | None = None
    replaces: str | None = None
    superseded_by: str | None = None
    superseded_at: Timestamp | None = None

    @property
    def active(self) -> bool:
        return self.status != "superseded"


class ReassignmentHistory(Record):
    protocol_id: str
    old_assignment_id: str
    new_assignment_id: str
    old_reviewer_id: str
    old_reviewer_name: str = ""
    old_reviewer_email: str = ""
    new_reviewer_id: str
    new_reviewer_name: str = ""
    new_reviewer_email: str = ""
    slot: int
    form_type: FormType
    original_deadline: Timestamp
    new_deadline: Timestamp
    reassigned_at: Timestamp
    reassigned_by: str
    reason: str = ""
    days_overdue: int = 0


class DocumentVersion(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: int
    storage_path: str
    file_name: str
    uploaded_at: Timestamp
    uploaded_by: str = ""
    status: DocumentStatus = "pending"
    comment: str | None = None
    reviewed_by: str | None = None
    reviewed_at: Timestamp | None = None


class DocumentRecord(Record):
    protocol_id: str
    title: str
    category: str = "supplementary"
    description: str = ""
    status: DocumentStatus = "pending"
    version: int = 1
    storage_path: str | None = None
    file_name: str | None = None
    comment: str | None = None
    request_id: str | None = None
    due_date: Timestamp | None = None
    urgent: bool = False
    versions: list[DocumentVersion] = Field(default_factory=list)
    created_at: Timestamp
    created_by: str = ""
    updated_at: Timestamp | None = None


class AssessmentForm(Record):
    protocol_id: str
    assignment_id: str
    form_type: FormType
    reviewer_id: str
    reviewer_name: str = ""
    status: FormStatus = "not-started"
    form_data: dict[str, Any] = Field(default_factory=dict)
    last_saved_at: Timestamp | None = None
    submitted_at: Timestamp | None = None
    approved_at: Timestamp | None = None
    approved_by: str | None = None
    returned_at: Timestamp | None = None
    rejection_reason: str | None = None


class Decision(Record):
    protocol_id: str
    version: int
    decision_type: DecisionType
    decision_date: Timestamp
    decision_by: str
    rationale: str = ""
    timeline: str | None = None
    meeting_reference: str | None = None
    documents: list[str] = Field(default_factory=list)
    created_at: Timestamp
