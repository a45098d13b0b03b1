"""
Global middleware and exception handlers.
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from oauth.exceptions import OAuthBridgeError

logger = logging.getLogger(__name__)


def register_middleware(app: FastAPI) -> None:
    """Attach app-level middleware and map OAuth errors to HTTP responses."""

    @app.middleware("http")
    async def request_timer(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        logger.debug("%s %s — %.3fs", request.method, request.url.path, elapsed)
        return response

    @app.exception_handler(OAuthBridgeError)
    async def oauth_error_handler(request: Request, exc: OAuthBridgeError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "%s on %s %s (tenant=%s): %s",
                type(exc).__name__, request.method, request.url.path, exc.tenant_id, exc.message,
            )
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})
