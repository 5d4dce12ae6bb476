# SPDX-License-Identifier: Apache-2.0
"""SQLModel tables and typed record views."""
from recboard.models.entities import (
    AssessmentForm,
    Decision,
    DecisionSummary,
    DocumentRecord,
    DocumentVersion,
    Protocol,
    ReassignmentHistory,
    Reviewer,
    ReviewerAssignment,
)
from recboard.models.record import AuditLog, StoredRecord

__all__ = [
    "AssessmentForm",
    "AuditLog",
    "Decision",
    "DecisionSummary",
    "DocumentRecord",
    "DocumentVersion",
    "Protocol",
    "ReassignmentHistory",
    "Reviewer",
    "ReviewerAssignment",
    "StoredRecord",
]
