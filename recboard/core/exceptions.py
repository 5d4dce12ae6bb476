# SPDX-License-Identifier: Apache-2.0
"""Custom exception classes."""
from __future__ import annotations

from typing import Any


class RecBoardError(Exception):
    """Base exception for the review engine."""

    code = "rec_board_error"
    status_code = 400

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message, **self.extra}


class NotFoundError(RecBoardError):
    """Resource not found."""

    code = "not_found"
    status_code = 404


class PermissionDenied(RecBoardError):
    """Actor role may not perform this action."""

    code = "permission_denied"
    status_code = 403


class InvalidTransition(RecBoardError):
    """Status change not permitted from the current state."""

    code = "invalid_transition"
    status_code = 409

    def __init__(self, entity: str, current: str, target: str, message: str | None = None) -> None:
        super().__init__(
            message or f"{entity} cannot move from '{current}' to '{target}'",
            entity=entity,
            current=current,
            target=target,
        )


class SlotOccupied(RecBoardError):
    """An active assignment already holds the review slot."""

    code = "slot_occupied"
    status_code = 409

    def __init__(self, protocol_id: str, slot: int, assignment_id: str) -> None:
        super().__init__(
            f"Slot {slot} of protocol {protocol_id} is held by active assignment {assignment_id}",
            protocol_id=protocol_id,
            slot=slot,
            assignment_id=assignment_id,
        )


class CommentRequired(RecBoardError):
    """Document review to rework/revise without a comment."""

    code = "comment_required"
    status_code = 422

    def __init__(self, status: str) -> None:
        super().__init__(f"A non-empty comment is required to set status '{status}'", status=status)


class UnknownRequest(RecBoardError):
    """Upload against a request id that resolves to no document."""

    code = "unknown_request"
    status_code = 404

    def __init__(self, request_id: str) -> None:
        super().__init__(f"No document is waiting on request '{request_id}'", request_id=request_id)


class ValidationFailed(RecBoardError):
    """Assessment data is missing required fields or holds invalid choices."""

    code = "validation_failed"
    status_code = 422

    def __init__(self, fields: list[dict], message: str | None = None) -> None:
        names = ", ".join(f["field"] for f in fields)
        super().__init__(message or f"Invalid or missing fields: {names}", fields=fields)
        self.fields = fields


class StoreUnavailable(RecBoardError):
    """Transient loss of the record store."""

    code = "store_unavailable"
    status_code = 503
