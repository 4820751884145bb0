"""Health check endpoints."""

from fastapi import APIRouter

from multiarch import __version__

router = APIRouter()


@router.get("/health")
def health() -> dict[str, str]:
    """Health status with version."""
    return {"status": "ok", "version": __version__}


@router.get("/")
def root() -> dict[str, str]:
    """API name and version."""
    return {"name": "Multi-Arch Publish API", "version": __version__}
