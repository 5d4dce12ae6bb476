# SPDX-License-Identifier: Apache-2.0
"""FastAPI app factory. Thin layer: security middleware + routers only."""
import logging

from fastapi import FastAPI

from recboard import __version__
from recboard.config import settings
from recboard.core.security import add_security_middleware
from recboard.database import create_db_and_tables
from recboard.routers import assessments, assignments, documents, preview, protocols, realtime, system


def create_app() -> FastAPI:
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("recboard").setLevel(settings.log_level.upper())

    app = FastAPI(title="REC Protocol Review API", version=__version__)
    add_security_middleware(app)

    @app.on_event("startup")
    def on_startup():
        settings.upload_dir_path.mkdir(parents=True, exist_ok=True)
        create_db_and_tables()

    app.include_router(protocols.router)
    app.include_router(assignments.router)
    app.include_router(documents.router)
    app.include_router(assessments.router)
    app.include_router(preview.router)
    app.include_router(realtime.router)
    app.include_router(system.router)
    return app


app = create_app()
