"""FastAPI application factory and main app.

Web routes are thin read-only views over the run ledger.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from multiarch import __version__
from multiarch.db import create_all_tables, get_engine, get_session_factory
from web.routers import config, health, runs


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Initialize database tables on startup."""
    engine = get_engine()
    create_all_tables(engine)
    app.state.session_factory = get_session_factory(engine)
    yield


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application.
    """
    application = FastAPI(
        title="Multi-Arch Publish API",
        description="Read-only view of multi-platform image runs and tags",
        version=__version__,
        lifespan=lifespan,
    )

    application.include_router(health.router, tags=["health"])
    application.include_router(config.router, prefix="/config", tags=["config"])
    application.include_router(runs.router, prefix="/runs", tags=["runs"])
    application.include_router(runs.tags_router, prefix="/tags", tags=["tags"])

    return application


app = create_app()
