# SPDX-License-Identifier: Apache-2.0
"""Pydantic request schemas."""
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field as PydanticField

from recboard.models.entities import DecisionType, ResearchType, ReviewType


class ProtocolCreate(BaseModel):
    title: str = PydanticField(..., min_length=1, max_length=500)
    principal_investigator: str = PydanticField("", max_length=200)
    review_type: ReviewType = "full"
    research_type: ResearchType = "SR"
    ex_subtype: Literal["documentary", "experimental"] | None = None


class StatusChange(BaseModel):
    status: str


class DecisionCreate(BaseModel):
    decision_type: DecisionType
    rationale: str = PydanticField("", max_length=5000)
    decision_date: datetime | None = None
    timeline: str | None = None
    meeting_reference: str | None = None
    documents: list[str] = []


class ReviewerCreate(BaseModel):
    name: str = PydanticField(..., min_length=1, max_length=200)
    email: str = PydanticField("", max_length=254)
    expertise: list[str] = []
    is_active: bool = True
    reviewer_id: str | None = None


class AssignmentCreate(BaseModel):
    slot: int = PydanticField(..., ge=0)
    reviewer_id: str
    deadline: datetime | None = None
    form_type: str | None = None


class BulkAssignment(BaseModel):
    reviewer_ids: list[str] = PydanticField(..., min_length=1)
    deadline: datetime | None = None


class AssignmentComplete(BaseModel):
    decision: str
    comments: str = PydanticField("", max_length=5000)


class Reassignment(BaseModel):
    new_reviewer_id: str
    new_deadline: datetime | None = None
    reason: str = PydanticField("", max_length=2000)


class DocumentReview(BaseModel):
    status: str
    comment: str | None = PydanticField(None, max_length=5000)


class DocumentRequestCreate(BaseModel):
    title: str = PydanticField(..., min_length=1, max_length=300)
    category: str = "supplementary"
    description: str = PydanticField("", max_length=2000)
    due_date: datetime | None = None
    urgent: bool = False


class FormData(BaseModel):
    form_data: dict[str, Any] = {}


class FormReturn(BaseModel):
    reason: str = PydanticField("", max_length=2000)


class SettingsInit(BaseModel):
    user_id: str = PydanticField(..., min_length=1, max_length=128)
