"""
FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from entryflow import __version__
from entryflow.api.routes import entries_router, health_router
from entryflow.config import Settings, get_settings
from entryflow.db import close_db, get_engine, init_db
from entryflow.observability.logging import setup_logging
from entryflow.observability.metrics import setup_metrics
from entryflow.observability.tracing import (
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_tracing,
)
from entryflow.store import RecordStore, SqlRecordStore
from entryflow.worker.dispatcher import Dispatcher
from entryflow.worker.scheduler import EntryScheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    settings: Settings = app.state.settings
    uses_database = isinstance(app.state.store, SqlRecordStore)

    # Startup
    setup_logging(settings)
    setup_metrics()
    setup_tracing(settings)
    if uses_database:
        await init_db(settings)
        instrument_sqlalchemy(get_engine().sync_engine)

    logger.info(
        "Application started",
        extra={"worker_id": app.state.dispatcher.scheduler.worker_id},
    )

    yield

    # Shutdown
    await app.state.dispatcher.drain()
    if uses_database:
        await close_db()
    logger.info("Application shutdown")


def create_app(
    store: RecordStore | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        store: Record store to serve. Defaults to the SQL store.
        settings: Settings to use. Defaults to the cached settings.

    Returns:
        FastAPI: The configured application instance.
    """
    settings = settings or get_settings()
    store = store or SqlRecordStore()

    app = FastAPI(
        title="Entryflow API",
        description="Create entries and watch them advance through processing stages",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.state.settings = settings
    app.state.store = store
    app.state.dispatcher = Dispatcher(EntryScheduler.from_settings(store, settings))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(entries_router)

    instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()

    uvicorn.run(
        "entryflow.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    run()
