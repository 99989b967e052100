"""Liveness endpoint with the provider readiness report."""

from datetime import datetime, timezone

from fastapi import APIRouter

from .deps import ProviderRegistryDep

SERVICE_NAME = "finagent"
SERVICE_VERSION = "1.0.0"

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(registry: ProviderRegistryDep) -> dict:
    """Always 200 while the process serves; ``degraded`` without providers."""
    readiness = registry.readiness()
    return {
        "status": "healthy" if readiness["ready"] else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "providers": readiness,
    }
