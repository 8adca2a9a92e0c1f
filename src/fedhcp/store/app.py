"""
Resource store service.

FastAPI application serving a SQLite-backed resource store to one or more
responders, with the reference address allocator running as a background
task.
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

from fedhcp import __version__
from fedhcp.models.enums import LogLevel
from fedhcp.store import api
from fedhcp.store.allocator import allocator_loop
from fedhcp.store.base import ResourceStore
from fedhcp.store.config import config
from fedhcp.store.sqlite import SQLiteResourceStore
from fedhcp.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)


# =============================================================================
# Application Setup
# =============================================================================


def create_app(
    store: ResourceStore,
    allocator: bool = False,
    allocator_interval: float = 0.5,
) -> FastAPI:
    """
    Build the store service application.

    Args:
        store: Backing store shared by all routes.
        allocator: Start the address allocator with the application.
        allocator_interval: Delay between allocator passes in seconds.
    """
    background_tasks: set[asyncio.Task] = set()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Store service starting up")
        if allocator:
            task = asyncio.create_task(
                allocator_loop(store, allocator_interval), name="allocator"
            )
            background_tasks.add(task)
            task.add_done_callback(background_tasks.discard)

        yield

        logger.info("Store service shutting down")
        for task in background_tasks:
            task.cancel()
        if background_tasks:
            await asyncio.gather(*background_tasks, return_exceptions=True)
        store.close()
        logger.info("Store service shut down complete")

    app = FastAPI(
        title="FeDHCP Resource Store",
        description="Subnets, address reservations and endpoints",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.store = store
    app.include_router(api.router, prefix="/api", tags=["Resources"])
    return app


# =============================================================================
# Server Entry Points
# =============================================================================


def run():
    """Run the store service using uvicorn."""
    import uvicorn

    configure_logging(config.LOG_LEVEL, config.LOG_FILE)

    uvicorn_level_map = {
        LogLevel.FULL: "debug",
        LogLevel.DEBUG: "debug",
        LogLevel.INFO: "info",
        LogLevel.WARNING: "warning",
    }
    uvicorn_level = uvicorn_level_map.get(config.LOG_LEVEL, "info")

    store = SQLiteResourceStore(config.DB_FILE)
    app = create_app(
        store,
        allocator=config.ALLOCATOR_ENABLED,
        allocator_interval=config.ALLOCATOR_INTERVAL_SECONDS,
    )

    logger.info(f"Starting store service on {config.STORE_BIND_IP}:{config.STORE_PORT}")
    uvicorn.run(
        app,
        host=config.STORE_BIND_IP,
        port=config.STORE_PORT,
        log_level=uvicorn_level,
        log_config=None,
    )
