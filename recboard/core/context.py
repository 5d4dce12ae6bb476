# SPDX-License-Identifier: Apache-2.0
"""Explicit actor context passed to every operation."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from fastapi import Header

from recboard.core.exceptions import PermissionDenied

Role = Literal["proponent", "reviewer", "chairperson"]
ROLES = ("proponent", "reviewer", "chairperson")


@dataclass(frozen=True)
class Actor:
    id: str
    role: Role
    name: str = ""
    email: str = ""

    @property
    def is_chairperson(self) -> bool:
        return self.role == "chairperson"

    def label(self) -> str:
        return self.name or self.email or self.id


def require_role(actor: Actor, *roles: str, action: str = "this action") -> None:
    if actor.role not in roles:
        raise PermissionDenied(
            f"Role '{actor.role}' may not perform {action}",
            role=actor.role,
            allowed=list(roles),
        )


def require_chairperson(actor: Actor, action: str) -> None:
    require_role(actor, "chairperson", action=action)


def get_actor(
    x_actor_id: str = Header(..., description="Acting user id"),
    x_actor_role: str = Header(..., description="proponent, reviewer or chairperson"),
    x_actor_name: str = Header(""),
    x_actor_email: str = Header(""),
) -> Actor:
    """Build the actor from trusted headers (identity is established upstream)."""
    if x_actor_role not in ROLES:
        raise PermissionDenied(f"Unknown role '{x_actor_role}'", role=x_actor_role, allowed=list(ROLES))
    return Actor(id=x_actor_id, role=x_actor_role, name=x_actor_name, email=x_actor_email)
