# SPDX-License-Identifier: Apache-2.0
"""Record paths of the protocol tree."""

PROTOCOLS = "protocols"
REVIEWERS = "reviewers"


def protocol(protocol_id: str) -> str:
    return f"{PROTOCOLS}/{protocol_id}"


def documents(protocol_id: str) -> str:
    return f"{protocol(protocol_id)}/documents"


def document(protocol_id: str, document_id: str) -> str:
    return f"{documents(protocol_id)}/{document_id}"


def assignments(protocol_id: str) -> str:
    return f"{protocol(protocol_id)}/assignments"


def assignment(protocol_id: str, assignment_id: str) -> str:
    return f"{assignments(protocol_id)}/{assignment_id}"


def assessment_form(protocol_id: str, assignment_id: str, form_type: str) -> str:
    return f"{assignment(protocol_id, assignment_id)}/assessment_forms/{form_type}"


def reassignment_history(protocol_id: str) -> str:
    return f"{protocol(protocol_id)}/reassignment_history"


def decisions(protocol_id: str) -> str:
    return f"{protocol(protocol_id)}/decisions"


def decision(protocol_id: str, version: int) -> str:
    return f"{decisions(protocol_id)}/v{version}"


def reviewer(reviewer_id: str) -> str:
    return f"{REVIEWERS}/{reviewer_id}"
