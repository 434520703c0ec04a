"""FastAPI application factory and main app.

This module creates the FastAPI application with all routers and
dependency injection configured. Web routes are thin proxies to core APIs.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from web2desk import __version__
from web2desk.config import Settings, configure_logging, get_settings
from web2desk.db import create_all_tables, get_engine, get_session_factory
from web.routers import builds, config, health, projects, workflows


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager.

    Configures logging and initializes database tables on startup.
    """
    configure_logging()
    engine = get_engine()
    create_all_tables(engine)
    app.state.session_factory = get_session_factory(engine)
    yield
    engine.dispose()


def include_routers(application: FastAPI, settings: Settings | None = None) -> None:
    """Attach all API routers and the local file mount."""
    if settings is None:
        settings = get_settings()

    application.include_router(health.router, tags=["health"])
    application.include_router(config.router, prefix="/config", tags=["config"])
    application.include_router(builds.router, prefix="/builds", tags=["builds"])
    application.include_router(projects.router, prefix="/projects", tags=["projects"])
    application.include_router(workflows.router, prefix="/workflows", tags=["workflows"])

    if settings.storage_backend == "local":
        application.mount(
            "/files",
            StaticFiles(directory=settings.storage_dir, check_dir=False),
            name="files",
        )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application.
    """
    application = FastAPI(
        title="Web2Desk API",
        description="HTTP API for packaging web apps as desktop and mobile "
        "installers through CI workflows",
        version=__version__,
        lifespan=lifespan,
    )
    include_routers(application)
    return application


# Create the default application instance
app = create_app()
