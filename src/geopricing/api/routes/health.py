"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...config import settings
from ...services.routing.distance_matrix import DistanceMatrixClient, check_health
from ..dependencies import get_distance_client

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/provider", status_code=status.HTTP_200_OK)
async def health_provider(client: DistanceMatrixClient | None = Depends(get_distance_client)) -> dict:
    """Check the distance-matrix provider with a single short route."""
    provider = settings.distance_provider
    if client is None:
        return {"service": provider, "healthy": False, "error": "provider not configured"}
    try:
        healthy = await check_health(client)
        return {"service": provider, "healthy": healthy}
    except Exception as e:
        return {"service": provider, "healthy": False, "error": str(e)}
