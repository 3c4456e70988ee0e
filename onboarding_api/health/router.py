"""Health check endpoints."""

from fastapi import APIRouter, Request


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, str | bool]:
    """Readiness probe - ready once the repository is wired."""
    settings = request.app.state.settings
    repository_ready = getattr(request.app.state, "repository", None) is not None
    return {
        "status": "ready" if repository_ready else "starting",
        "storage_backend": settings.storage_backend,
        "repository": repository_ready,
        "environment": settings.environment,
    }


@router.get("")
async def health(request: Request) -> dict[str, str]:
    """General health check endpoint."""
    settings = request.app.state.settings
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
