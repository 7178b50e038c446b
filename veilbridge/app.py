"""FastAPI application factory for the read-side API."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from veilbridge import __version__
from veilbridge.config import Config
from veilbridge.store import RecordStore, open_store
from veilbridge.api import router
from veilbridge.api.dependencies import set_store

logger = logging.getLogger(__name__)


def create_app(config: Config | None = None, store: RecordStore | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Application configuration. If None, loads from environment.
        store: Record store to serve. If None, one is opened from
            config.database_url at startup and closed at shutdown.

    Returns:
        Configured FastAPI application
    """
    if config is None:
        config = Config.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown."""
        # Startup
        logger.info("Starting private transfer read API")
        owned = store is None
        active = await open_store(config.database_url) if owned else store
        if owned:
            logger.info(f"Using record store: {config.database_url}")

        set_store(active)

        yield

        # Shutdown
        logger.info("Shutting down...")
        set_store(None)
        if owned:
            await active.close()

    app = FastAPI(
        title="Private Transfer Ledger API",
        description="Deposits, cross-chain transfers and activity indexed from the ingress and vault contracts",
        version=__version__,
        lifespan=lifespan,
    )

    # Include API routes
    app.include_router(router)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app
