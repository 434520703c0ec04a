"""Router modules for FastAPI web API."""

from web.routers import builds, config, health, projects, workflows

__all__ = ["builds", "config", "health", "projects", "workflows"]
