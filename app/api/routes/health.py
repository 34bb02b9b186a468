from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.config import settings
from app.services.discovery.service import DiscoveryService, get_discovery_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
    }


@router.get("/ready")
async def readiness_check(service: DiscoveryService = Depends(get_discovery_service)):
    """Readiness check endpoint that includes investor store connectivity."""
    store_ok = await service.store.check_health()

    if not store_ok:
        raise HTTPException(status_code=503, detail="Investor store is not available")

    return {
        "status": "ready",
        "version": settings.app_version,
        "environment": settings.environment,
        "investor_store": "connected" if settings.database_url else "in-memory",
    }
