# SPDX-License-Identifier: Apache-2.0
"""Rate limiting helpers, sanitization, error mapping and security middleware."""
from __future__ import annotations

import hashlib
import logging
import re
import uuid
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic_core import to_jsonable_python
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from recboard.core.exceptions import RecBoardError

_limiter = Limiter(key_func=get_remote_address)

_logger = logging.getLogger("recboard")


def get_limiter() -> Limiter:
    return _limiter


def rate_limit(s: str):
    return _limiter.limit(s)


def _actor_label(request: Request) -> str:
    actor_id = request.headers.get("X-Actor-Id")
    if not actor_id:
        return "anonymous"
    return f"{request.headers.get('X-Actor-Role', '?')}:{actor_id}"


def add_security_middleware(app: FastAPI) -> None:
    """Register exception handlers, security headers, and CORS. No business logic."""
    app.state.limiter = _limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    @app.exception_handler(RecBoardError)
    async def domain_exception_handler(request: Request, exc: RecBoardError):
        _logger.info(
            "%s %s rejected for %s: %s",
            request.method, request.url.path, _actor_label(request), exc.message,
        )
        return JSONResponse(status_code=exc.status_code, content=to_jsonable_python(exc.to_dict()))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        error_id = str(uuid.uuid4())
        _logger.error("Unhandled exception %s on %s: %s", error_id, request.url.path, exc, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "internal_error", "detail": "Internal server error", "error_id": error_id},
        )

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        response = await call_next(request)
        _logger.debug(
            "%s %s -> %s (%s, request %s)",
            request.method, request.url.path, response.status_code, _actor_label(request), request_id,
        )
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Content-Security-Policy"] = "default-src 'self'"
        from recboard.config import settings
        if settings.production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000"
        return response

    from recboard.config import settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def secure_filename(filename: str) -> str:
    """Path traversal prevention: only alphanumeric, underscore, dash, dot."""
    if not filename or not filename.strip():
        return "unnamed"
    name = Path(filename.replace("\\", "/")).name
    safe = "".join(c if c.isalnum() or c in "._-" else "_" for c in name).lstrip(".")
    return safe or "unnamed"


def sanitize_text(value: str | None, max_len: int = 5000) -> str:
    """Strip HTML/script tags and enforce max length."""
    if not value:
        return ""
    value = re.sub(r"<[^>]+>", "", value)
    value = re.sub(r"javascript:", "", value, flags=re.IGNORECASE)
    return value.strip()[:max_len]


def sha3_256_hex(*parts: bytes | str) -> str:
    """SHA3-256 hash of concatenated parts, hex-encoded."""
    h = hashlib.sha3_256()
    for p in parts:
        h.update(p.encode("utf-8") if isinstance(p, str) else p)
    return h.hexdigest()
