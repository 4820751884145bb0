"""Router modules for FastAPI web API."""

from web.routers import config, health, runs

__all__ = ["config", "health", "runs"]
