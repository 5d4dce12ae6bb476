# SPDX-License-Identifier: Apache-2.0
"""Baseline settings records for a user (idempotent bootstrap)."""
from __future__ import annotations

import logging
from datetime import datetime

from recboard.core.exceptions import ValidationFailed
from recboard.store import RecordStore, utcnow

_logger = logging.getLogger("recboard")

SETTINGS_COLLECTIONS = ("rec_settings", "settings")


def initialize_user_settings(store: RecordStore, user_id: str, now: datetime | None = None) -> dict:
    """Create ``rec_settings/{user}`` and ``settings/{user}`` if absent.

    Returns which records were created and which already existed.
    """
    user_id = user_id.strip()
    if not user_id or "/" in user_id:
        raise ValidationFailed([{"field": "user_id", "message": "User id must be non-empty and contain no slash"}])
    now = now or utcnow()
    created, existing = [], []
    with store.transaction():
        for name in SETTINGS_COLLECTIONS:
            path = f"{name}/{user_id}"
            if store.get(path) is not None:
                existing.append(path)
                continue
            store.write(path, {"user_id": user_id, "initialized": True, "created_at": now, "updated_at": now})
            created.append(path)
    _logger.info("Settings for %s: created=%s existing=%s", user_id, created, existing)
    return {"user_id": user_id, "created": created, "existing": existing}
