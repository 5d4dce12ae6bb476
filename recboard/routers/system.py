# SPDX-License-Identifier: Apache-2.0
"""Health, version and settings bootstrap endpoints."""
import sys

import fastapi
from fastapi import APIRouter, Depends

from recboard import __version__
from recboard.database import get_store
from recboard.schemas import SettingsInit
from recboard.services import settings_service
from recboard.store import RecordStore

router = APIRouter(tags=["system"])


@router.get("/system/health")
def health(store: RecordStore = Depends(get_store)):
    """Liveness/readiness."""
    return {"status": "ok", "live_queries": len(store.hub)}


@router.get("/system/version")
def system_version():
    return {
        "version": __version__,
        "fastapi_version": getattr(fastapi, "__version__", "unknown"),
        "python_version": f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
    }


@router.post("/settings/init")
def settings_init(body: SettingsInit, store: RecordStore = Depends(get_store)):
    """Idempotently create baseline settings records for a user."""
    return settings_service.initialize_user_settings(store, body.user_id)
