"""
Health Check Endpoints

- /health/live  - Basic liveness (app is running)
- /health/ready - Readiness check (tree store reachable, storage configured)
"""

from fastapi import APIRouter, Depends, HTTPException, status
from datetime import datetime, timezone
from typing import Any, Dict
import time

from app.core.config import settings
from app.core.exceptions import PortalException
from app.core.logging_config import logger
from app.db.paths import RESOURCES_ROOT
from app.services.container import ServiceContainer, get_container


router = APIRouter(prefix="/health", tags=["Health Checks"])


async def check_tree_store(services: ServiceContainer) -> Dict[str, Any]:
    """Read the resources root to verify the tree store answers"""
    start = time.time()
    try:
        await services.tree.list_children(RESOURCES_ROOT)
        return {
            "status": "healthy",
            "backend": type(services.tree).__name__,
            "latency_ms": round((time.time() - start) * 1000, 2),
        }
    except PortalException as e:
        logger.error(f"[HealthCheck] Tree store check failed: {e.message}")
        return {
            "status": "unhealthy",
            "backend": type(services.tree).__name__,
            "error": e.message,
        }


def check_storage() -> Dict[str, Any]:
    """Report the object storage configuration"""
    if settings.STORAGE_MODE == "s3":
        return {
            "status": "healthy" if settings.S3_BUCKET_NAME else "unhealthy",
            "provider": "s3",
            "endpoint": settings.S3_ENDPOINT_URL or "aws",
            "bucket": settings.S3_BUCKET_NAME,
        }
    return {
        "status": "healthy",
        "provider": "local",
        "path": str(settings.STORAGE_LOCAL_PATH),
    }


@router.get("/live")
async def liveness_check():
    """Liveness probe - returns 200 while the process is alive"""
    return {
        "status": "alive",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@router.get("/ready")
async def readiness_check(services: ServiceContainer = Depends(get_container)):
    """
    Readiness probe - 200 only when the tree store answers.
    """
    tree_check = await check_tree_store(services)
    response = {
        "status": "ready" if tree_check["status"] == "healthy" else "not_ready",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "tree_store": tree_check,
            "storage": check_storage(),
            "gateway": {"mode": settings.STORAGE_GATEWAY_MODE},
        },
    }
    if tree_check["status"] != "healthy":
        logger.warning(f"[HealthCheck] Readiness check failed: {response}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=response)
    return response
