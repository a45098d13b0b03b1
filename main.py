"""
Tenant OAuth bridge — application entry point.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from typing import Optional

import uvicorn
from fastapi import FastAPI

from api.dependencies import get_oauth_flow
from api.middleware import register_middleware
from api.routes import router as oauth_router
from config.settings import config
from database.session import create_tables
from oauth.pkce import PkceStorage

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "sqlalchemy.engine"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


async def sweep_abandoned_challenges(pkce_storage: PkceStorage) -> None:
    """Periodically delete PKCE challenges whose callback never arrived."""
    interval = config.pkce_sweep_interval_seconds
    while True:
        await asyncio.sleep(interval)
        try:
            await pkce_storage.purge_expired(config.pkce_ttl_seconds)
        except Exception:
            logger.exception("PKCE sweep failed; retrying in %ds", interval)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Tenant OAuth Bridge",
        version="1.0.0",
        description="Per-tenant OAuth2 PKCE flow with encrypted token storage.",
    )

    register_middleware(app)
    app.include_router(oauth_router)

    sweeper: Optional[asyncio.Task] = None

    @app.on_event("startup")
    async def on_startup():
        nonlocal sweeper
        # Fail fast on a missing/invalid key or client credentials
        flow = get_oauth_flow()

        await create_tables()

        # Clean up challenges abandoned while the service was down
        purged = await flow.pkce_storage.purge_expired(config.pkce_ttl_seconds)
        if purged:
            logger.info("Cleaned up %d stale PKCE challenges from previous run", purged)

        if config.pkce_sweep_interval_seconds > 0:
            sweeper = asyncio.create_task(sweep_abandoned_challenges(flow.pkce_storage))

        logger.info("Application ready to accept requests.")

    @app.on_event("shutdown")
    async def on_shutdown():
        nonlocal sweeper
        if sweeper is not None:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
            sweeper = None

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
